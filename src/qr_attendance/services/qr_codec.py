from __future__ import annotations

import logging
import unicodedata
from io import BytesIO
from pathlib import Path
from typing import Any, Optional

import numpy as np
import qrcode
import zxingcpp
from PIL import Image

logger = logging.getLogger(__name__)

QR_BOX_SIZE = 10
QR_BORDER = 4


def _decode_symbol_data(raw: bytes | str) -> str:
    if not raw:
        return ""

    if isinstance(raw, str):
        decoded = raw
    else:
        try:
            decoded = raw.decode("utf-8")
        except UnicodeDecodeError:
            decoded = raw.decode("utf-8", errors="ignore")

    normalized = unicodedata.normalize("NFC", decoded)
    return normalized.strip()


def encode_png_bytes(payload: str) -> bytes:
    if not payload:
        raise ValueError("Cannot encode an empty payload.")

    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=QR_BOX_SIZE,
        border=QR_BORDER,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def encode_payload(payload: str) -> Image.Image:
    """Render ``payload`` as a QR symbol. Same payload, same pixels."""

    with Image.open(BytesIO(encode_png_bytes(payload))) as image:
        return image.convert("RGB")


def save_payload_image(payload: str, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encode_png_bytes(payload))
    return path


def _as_array(frame: Any) -> Any:
    if isinstance(frame, Image.Image):
        return np.asarray(frame.convert("L"))
    return frame


def decode_frame(frame: Any) -> Optional[str]:
    """Try to read one QR payload from a still frame.

    Returns ``None`` when the frame holds no readable symbol. That is the usual
    result while a camera is pointed around, so it is not an error and nothing
    is retried here.
    """

    if frame is None:
        return None

    try:
        decoded = zxingcpp.read_barcodes(
            _as_array(frame),
            formats=zxingcpp.BarcodeFormat.QRCode,
            try_rotate=True,
            try_downscale=True,
            text_mode=zxingcpp.TextMode.HRI,
        )
    except Exception as exc:  # noqa: BLE001 - a garbled frame is just "not found"
        logger.debug("Frame could not be decoded: %s", exc)
        return None

    for obj in decoded:
        if hasattr(obj, "valid") and not obj.valid:
            continue
        if getattr(obj, "error", None):
            continue

        payload = _decode_symbol_data(getattr(obj, "text", ""))
        if not payload:
            payload_bytes = getattr(obj, "bytes", b"") or b""
            if not isinstance(payload_bytes, (bytes, bytearray)):
                payload_bytes = bytes(payload_bytes)
            payload = _decode_symbol_data(bytes(payload_bytes))
        if payload:
            return payload

    return None

from __future__ import annotations

import logging
import math
import threading
import wave
from io import BytesIO

try:
    import winsound  # type: ignore[import-not-found]
except ImportError:  # pragma: no cover - non-Windows fallback
    winsound = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

_SCAN_WAV_CACHE: bytes | None = None


def _build_wave_bytes(
    *,
    frequency_hz: int = 1800,
    duration_ms: int = 140,
    sample_rate: int = 44100,
    amplitude: float = 0.35,
) -> bytes:
    frame_count = int(sample_rate * (duration_ms / 1000.0))
    samples = bytearray()
    for index in range(frame_count):
        value = int(32767 * amplitude * math.sin(2 * math.pi * frequency_hz * index / sample_rate))
        samples.extend(value.to_bytes(2, byteorder="little", signed=True))

    buffer = BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(samples)
    return buffer.getvalue()


def _play() -> None:
    global _SCAN_WAV_CACHE
    if winsound is None:
        print("\a", end="", flush=True)
        return

    if _SCAN_WAV_CACHE is None:
        _SCAN_WAV_CACHE = _build_wave_bytes()
    try:
        winsound.PlaySound(_SCAN_WAV_CACHE, winsound.SND_ASYNC | winsound.SND_MEMORY)
    except RuntimeError as exc:
        # SND_MEMORY cannot be combined with SND_ASYNC on Windows.
        logger.debug("In-memory scan beep failed, using Beep: %s", exc)
        winsound.Beep(1500, 120)


def play_scan_beep_async() -> None:
    threading.Thread(target=_play, daemon=True).start()

from __future__ import annotations

import logging
import threading
from contextlib import suppress
from typing import Any, ClassVar, Optional

logger = logging.getLogger(__name__)


class CameraUnavailableError(RuntimeError):
    """Raised when the camera cannot be opened (missing, denied, or no OpenCV)."""


class CameraBusyError(RuntimeError):
    """Raised when another capture loop already owns the camera."""


class CameraSource:
    """Exclusive, scoped handle on one OpenCV capture device.

    Only one ``CameraSource`` per camera index may be open in the process at a
    time. Use it as a context manager, or pair ``open()`` with ``release()``;
    ``release()`` is idempotent.
    """

    _owners: ClassVar[dict[int, "CameraSource"]] = {}
    _registry_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, camera_index: int = 0, *, mirror: bool = True) -> None:
        self._camera_index = camera_index
        self._mirror = mirror
        self._capture: Any = None
        self._cv2: Any = None

    @property
    def camera_index(self) -> int:
        return self._camera_index

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    @classmethod
    def owner_of(cls, camera_index: int) -> Optional["CameraSource"]:
        with cls._registry_lock:
            return cls._owners.get(camera_index)

    def open(self) -> "CameraSource":
        if self.is_open:
            return self

        with self._registry_lock:
            owner = self._owners.get(self._camera_index)
            if owner is not None and owner is not self:
                raise CameraBusyError(
                    f"Camera {self._camera_index} is already in use by another scanner."
                )
            self._owners[self._camera_index] = self

        try:
            self._capture = self._open_capture()
        except BaseException:
            self._forget_owner()
            raise
        logger.info("Camera %s opened", self._camera_index)
        return self

    def read_frame(self) -> Any:
        if self._capture is None:
            return None

        ok, frame = self._capture.read()
        if not ok or frame is None:
            return None

        if self._mirror:
            try:
                frame = self._cv2.flip(frame, 1)
            except Exception:  # noqa: BLE001 - unflipped frame is still decodable
                logger.debug("Could not mirror frame from camera %s", self._camera_index)
        return frame

    def release(self) -> None:
        capture, self._capture = self._capture, None
        if capture is not None:
            with suppress(Exception):
                capture.release()
            logger.info("Camera %s released", self._camera_index)
        self._forget_owner()

    def __enter__(self) -> "CameraSource":
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _forget_owner(self) -> None:
        with self._registry_lock:
            if self._owners.get(self._camera_index) is self:
                del self._owners[self._camera_index]

    def _open_capture(self) -> Any:
        try:
            import cv2  # type: ignore[import-not-found]
        except ImportError as exc:
            raise CameraUnavailableError(
                "Missing QR scanner dependencies. Install OpenCV (cv2) to enable scanning."
            ) from exc

        self._cv2 = cv2
        backend_preferences = [getattr(cv2, "CAP_DSHOW", None), getattr(cv2, "CAP_ANY", None)]

        for backend in backend_preferences:
            if backend is None:
                capture = cv2.VideoCapture(self._camera_index)
            else:
                capture = cv2.VideoCapture(self._camera_index, backend)

            if capture.isOpened():
                return capture

            capture.release()

        logger.error("Camera %s could not be opened", self._camera_index)
        raise CameraUnavailableError(
            "Unable to access the camera. Check that it is connected and not used by another app."
        )

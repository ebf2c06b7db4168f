from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from qr_attendance.api.client import ApiError
from qr_attendance.models import MarkResult
from qr_attendance.services.attendance_marker import AttendanceMarker
from qr_attendance.services.camera import CameraBusyError, CameraUnavailableError
from qr_attendance.services.qr_codec import decode_frame
from qr_attendance.services.scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

SCAN_INTERVAL_SECONDS = 0.9
MARK_FAILED_MESSAGE = "Error marking attendance. Please try again."
NO_SESSION_MESSAGE = "No active session to scan."


class FrameSource(Protocol):
    def open(self) -> Any: ...

    def read_frame(self) -> Any: ...

    def release(self) -> None: ...


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    SUBMITTING = "submitting"
    MATCHED = "matched"


class ScanCaptureLoop:
    """Sample camera frames until one decodes, then mark attendance once.

    The sampling timer is cancelled and the camera released before the mark
    request is handed off, and the ``SUBMITTING`` state acts as the
    single-flight gate: while a mark is in flight no other submission (from a
    frame or from :meth:`simulate`) is accepted.
    """

    def __init__(
        self,
        marker: AttendanceMarker,
        scheduler: Scheduler,
        camera_factory: Callable[[], FrameSource],
        *,
        decoder: Callable[[Any], Optional[str]] = decode_frame,
        interval: float = SCAN_INTERVAL_SECONDS,
        on_result: Callable[[MarkResult], None] | None = None,
        on_error: Callable[[str], None] | None = None,
        on_state: Callable[[ScanState], None] | None = None,
        on_frame: Callable[[Any], None] | None = None,
        on_decoded: Callable[[str], None] | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("Scan interval must be positive.")
        self._marker = marker
        self._scheduler = scheduler
        self._camera_factory = camera_factory
        self._decoder = decoder
        self._interval = interval
        self._on_result = on_result
        self._on_error = on_error
        self._on_state = on_state
        self._on_frame = on_frame
        self._on_decoded = on_decoded

        self._state = ScanState.IDLE
        self._camera: Optional[FrameSource] = None
        self._timer: Optional[TimerHandle] = None
        self._submissions = 0
        self._last_result: Optional[MarkResult] = None

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_scanning(self) -> bool:
        return self._state is ScanState.SCANNING

    @property
    def is_submitting(self) -> bool:
        return self._state is ScanState.SUBMITTING

    @property
    def submissions(self) -> int:
        return self._submissions

    @property
    def last_result(self) -> Optional[MarkResult]:
        return self._last_result

    def start(self) -> bool:
        if self._state is ScanState.SCANNING:
            return True
        if self._state is ScanState.SUBMITTING:
            logger.debug("Start ignored while a mark request is in flight")
            return False

        camera = self._camera_factory()
        try:
            camera.open()
        except (CameraUnavailableError, CameraBusyError) as exc:
            logger.error("Scanner could not start: %s", exc)
            self._report_error(str(exc))
            return False

        self._camera = camera
        self._set_state(ScanState.SCANNING)
        self._schedule_tick()
        return True

    def stop(self) -> None:
        self._halt_sampling()
        if self._state is ScanState.SCANNING:
            self._set_state(ScanState.IDLE)

    def close(self) -> None:
        self.stop()
        self._on_result = None
        self._on_error = None
        self._on_state = None
        self._on_frame = None
        self._on_decoded = None

    def simulate(self, session_id: str | None) -> bool:
        """Submit ``session_id`` without the camera, through the same gate."""

        if not session_id:
            self._report_error(NO_SESSION_MESSAGE)
            return False
        if self._state is ScanState.SUBMITTING:
            return False
        self.stop()
        return self._submit(session_id)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------
    def _schedule_tick(self) -> None:
        self._timer = self._scheduler.call_later(self._interval, self._tick)

    def _tick(self) -> None:
        self._timer = None
        camera = self._camera
        if self._state is not ScanState.SCANNING or camera is None:
            return

        try:
            frame = camera.read_frame()
            if frame is not None and self._on_frame is not None:
                self._on_frame(frame)
            payload = self._decoder(frame) if frame is not None else None
        except Exception as exc:  # noqa: BLE001 - any capture fault ends this scan
            logger.exception("Scanner stopped after a capture error")
            self._halt_sampling()
            self._set_state(ScanState.IDLE)
            self._report_error(f"Scanner stopped: {exc}")
            return

        if not payload:
            self._schedule_tick()
            return

        # Stop sampling before anything else so no later frame can submit again.
        self._halt_sampling()
        logger.info("QR decoded, submitting attendance")
        if self._on_decoded is not None:
            self._on_decoded(payload)
        self._submit(payload)

    def _halt_sampling(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        camera, self._camera = self._camera, None
        if camera is not None:
            camera.release()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def _submit(self, payload: str) -> bool:
        if self._state is ScanState.SUBMITTING:
            logger.warning("Dropped a second submission while a mark is in flight")
            return False

        self._submissions += 1
        self._set_state(ScanState.SUBMITTING)
        self._scheduler.run_async(
            lambda: self._marker.mark(payload),
            self._handle_marked,
            self._handle_mark_failed,
        )
        return True

    def _handle_marked(self, result: MarkResult) -> None:
        self._last_result = result
        self._set_state(ScanState.MATCHED)
        if self._on_result is not None:
            self._on_result(result)

    def _handle_mark_failed(self, exc: BaseException) -> None:
        if isinstance(exc, ApiError):
            logger.warning("Mark request failed: %s", exc)
        else:
            logger.error("Mark request crashed", exc_info=exc)
        self._set_state(ScanState.IDLE)
        self._report_error(MARK_FAILED_MESSAGE)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _set_state(self, state: ScanState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._on_state is not None:
            self._on_state(state)

    def _report_error(self, message: str) -> None:
        if self._on_error is not None:
            self._on_error(message)

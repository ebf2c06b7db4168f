from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image

from qr_attendance.models import Session, SessionState, SessionView
from qr_attendance.services.qr_codec import encode_payload
from qr_attendance.services.session_tracker import SessionTracker
from qr_attendance.utils.time import format_countdown

logger = logging.getLogger(__name__)

LOADING_MESSAGE = "Loading QR session..."
NO_SESSION_MESSAGE = "No active lecture"
EXPIRED_MESSAGE = "Session expired. Generate a new QR."
ERROR_MESSAGE = "Could not load the live session"


@dataclass(frozen=True, slots=True)
class LiveSessionDisplay:
    headline: str
    tone: str = "info"
    countdown: str = ""
    banner: Optional[str] = None
    qr_image: Optional[Image.Image] = None
    qr_live: bool = False
    session_id: Optional[str] = None


DisplayListener = Callable[[LiveSessionDisplay], None]
GenerateCallback = Callable[[Optional[Session], Optional[BaseException]], None]


class LiveSessionPresenter:
    """Teacher-side view model for the QR shown on the classroom screen."""

    def __init__(
        self,
        tracker: SessionTracker,
        *,
        encoder: Callable[[str], Image.Image] = encode_payload,
    ) -> None:
        self._tracker = tracker
        self._encoder = encoder
        self._listeners: list[DisplayListener] = []
        self._qr_payload: Optional[str] = None
        self._qr_image: Optional[Image.Image] = None
        self._generating = False
        self._generate_error: Optional[str] = None
        self._generate_error_polls = 0
        self._display = self._build_display(tracker.view)
        self._unsubscribe = tracker.subscribe(self._handle_view)

    @property
    def display(self) -> LiveSessionDisplay:
        return self._display

    @property
    def is_generating(self) -> bool:
        return self._generating

    def subscribe(self, listener: DisplayListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def start(self) -> None:
        self._tracker.start()

    def stop(self) -> None:
        self._tracker.stop()

    def close(self) -> None:
        self.stop()
        self._unsubscribe()
        self._listeners.clear()

    def generate(
        self,
        duration_minutes: int,
        *,
        lecture_timing: str | None = None,
        on_done: GenerateCallback | None = None,
    ) -> bool:
        """Ask the issuer for a fresh session, then poll straight away.

        Returns ``False`` without calling the server while a previous request
        is still in flight.
        """

        if self._generating:
            return False
        if duration_minutes <= 0:
            raise ValueError("Session duration must be a positive number of minutes.")

        tracker = self._tracker
        self._generating = True
        self._generate_error = None

        def _request() -> Session:
            return tracker.backend.generate_session(
                tracker.credentials, tracker.class_id, duration_minutes, lecture_timing
            )

        def _on_success(session: Session) -> None:
            self._generating = False
            tracker.refresh()
            if on_done is not None:
                on_done(session, None)

        def _on_error(exc: BaseException) -> None:
            self._generating = False
            logger.warning("Generating a session for class %s failed: %s", tracker.class_id, exc)
            self._generate_error = str(exc) or "Failed to generate session QR"
            self._generate_error_polls = tracker.successful_polls
            self._refresh_display(tracker.view)
            if on_done is not None:
                on_done(None, exc)

        tracker.scheduler.run_async(_request, _on_success, _on_error)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _handle_view(self, view: SessionView) -> None:
        # A generate failure stays on screen until the next successful poll.
        if self._generate_error and self._tracker.successful_polls > self._generate_error_polls:
            self._generate_error = None
        self._refresh_display(view)

    def _refresh_display(self, view: SessionView) -> None:
        self._display = self._build_display(view)
        for listener in list(self._listeners):
            listener(self._display)

    def _image_for(self, payload: str) -> Image.Image:
        image = self._qr_image
        if image is None or payload != self._qr_payload:
            logger.debug("Rendering QR for new payload")
            image = self._encoder(payload)
            self._qr_image = image
            self._qr_payload = payload
        return image

    def _build_display(self, view: SessionView) -> LiveSessionDisplay:
        banner = self._generate_error or view.error

        if view.state is SessionState.LOADING:
            return LiveSessionDisplay(headline=LOADING_MESSAGE, banner=banner)

        if view.state is SessionState.ERROR:
            return LiveSessionDisplay(headline=ERROR_MESSAGE, tone="warning", banner=banner)

        if view.state is SessionState.NO_SESSION or view.session is None:
            return LiveSessionDisplay(headline=NO_SESSION_MESSAGE, banner=banner)

        image = self._image_for(view.session.payload)
        if view.state is SessionState.EXPIRED:
            return LiveSessionDisplay(
                headline=EXPIRED_MESSAGE,
                tone="warning",
                countdown=format_countdown(0),
                banner=banner,
                qr_image=image,
                qr_live=False,
                session_id=view.session_id,
            )

        return LiveSessionDisplay(
            headline=f"Expires in: {view.seconds_left} seconds",
            tone="success",
            countdown=format_countdown(view.seconds_left),
            banner=banner,
            qr_image=image,
            qr_live=True,
            session_id=view.session_id,
        )

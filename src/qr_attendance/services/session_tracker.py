from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Optional

from qr_attendance.api.client import ApiError, AttendanceBackend, Credentials, TransportError
from qr_attendance.models import Session, SessionState, SessionView
from qr_attendance.services.scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionView], None]

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_TICK_SECONDS = 1.0
DEFAULT_FAILURE_THRESHOLD = 3
NETWORK_ERROR_MESSAGE = "Could not reach the attendance server. Retrying…"


class SessionTracker:
    """Poll the issuer for a class's active session and keep a live countdown.

    Two timers run independently: a coarse poll timer and a 1 s countdown
    tick. The tracker never writes to the server; its view is advisory and
    the server decides expiry when attendance is marked.

    Every poll carries a sequence number and only a response newer than the
    last applied one is used, so a slow early response cannot overwrite a
    fresher one.
    """

    def __init__(
        self,
        backend: AttendanceBackend,
        credentials: Credentials,
        class_id: str,
        scheduler: Scheduler,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        tick_interval: float = DEFAULT_TICK_SECONDS,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    ) -> None:
        if poll_interval <= 0 or tick_interval <= 0:
            raise ValueError("Poll and tick intervals must be positive.")
        if failure_threshold < 2:
            raise ValueError("The failure threshold must be at least 2 consecutive polls.")

        self._backend = backend
        self._credentials = credentials
        self._class_id = class_id
        self._scheduler = scheduler
        self._poll_interval = poll_interval
        self._tick_interval = tick_interval
        self._failure_threshold = failure_threshold

        self._view = SessionView()
        self._listeners: list[SessionListener] = []
        self._running = False
        self._poll_timer: Optional[TimerHandle] = None
        self._tick_timer: Optional[TimerHandle] = None
        self._issued_sequence = 0
        self._applied_sequence = 0
        self._successful_polls = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def view(self) -> SessionView:
        return self._view

    @property
    def class_id(self) -> str:
        return self._class_id

    @property
    def backend(self) -> AttendanceBackend:
        return self._backend

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def successful_polls(self) -> int:
        return self._successful_polls

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.debug("Tracking sessions for class %s every %.1fs", self._class_id, self._poll_interval)
        self._publish(SessionView(state=SessionState.LOADING))
        self._poll()
        self._schedule_poll()
        self._schedule_tick()

    def stop(self) -> None:
        self._running = False
        for timer in (self._poll_timer, self._tick_timer):
            if timer is not None:
                timer.cancel()
        self._poll_timer = None
        self._tick_timer = None

    def refresh(self) -> None:
        """Poll right away, outside the regular cadence."""

        if self._running:
            self._poll()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    def _schedule_poll(self) -> None:
        self._poll_timer = self._scheduler.call_later(self._poll_interval, self._on_poll_timer)

    def _on_poll_timer(self) -> None:
        self._poll_timer = None
        if not self._running:
            return
        self._poll()
        self._schedule_poll()

    def _poll(self) -> None:
        self._issued_sequence += 1
        sequence = self._issued_sequence
        self._scheduler.run_async(
            lambda: self._backend.active_session(self._credentials, self._class_id),
            lambda session: self._apply_poll(sequence, session),
            lambda exc: self._apply_failure(sequence, exc),
        )

    def _accept(self, sequence: int) -> bool:
        if not self._running:
            return False
        if sequence <= self._applied_sequence:
            logger.debug(
                "Discarding stale poll #%d for class %s (already applied #%d)",
                sequence,
                self._class_id,
                self._applied_sequence,
            )
            return False
        self._applied_sequence = sequence
        return True

    def _apply_poll(self, sequence: int, session: Session | None) -> None:
        if not self._accept(sequence):
            return
        self._successful_polls += 1

        if session is None:
            self._publish(SessionView(state=SessionState.NO_SESSION))
            return

        self._publish(self._view_for(session))

    def _apply_failure(self, sequence: int, exc: BaseException) -> None:
        if not self._accept(sequence):
            return

        if isinstance(exc, ApiError):
            logger.warning("Active-session poll for class %s failed: %s", self._class_id, exc)
            message = NETWORK_ERROR_MESSAGE if isinstance(exc, TransportError) else str(exc)
        else:
            logger.error("Active-session poll for class %s crashed", self._class_id, exc_info=exc)
            message = NETWORK_ERROR_MESSAGE

        failures = self._view.consecutive_failures + 1
        if failures >= self._failure_threshold:
            self._publish(
                SessionView(state=SessionState.ERROR, error=message, consecutive_failures=failures)
            )
            return

        self._publish(replace(self._view, error=message, consecutive_failures=failures))

    # ------------------------------------------------------------------
    # Countdown
    # ------------------------------------------------------------------
    def _schedule_tick(self) -> None:
        self._tick_timer = self._scheduler.call_later(self._tick_interval, self._on_tick)

    def _on_tick(self) -> None:
        self._tick_timer = None
        if not self._running:
            return
        self._tick()
        self._schedule_tick()

    def _tick(self) -> None:
        view = self._view
        if view.state is not SessionState.ACTIVE or view.session is None:
            return

        seconds_left = view.session.seconds_left(self._scheduler.now())
        if seconds_left <= 0:
            logger.info("Session %s expired locally", view.session.session_id)
            self._publish(replace(view, state=SessionState.EXPIRED, seconds_left=0))
        elif seconds_left != view.seconds_left:
            self._publish(replace(view, seconds_left=seconds_left))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _view_for(self, session: Session) -> SessionView:
        seconds_left = session.seconds_left(self._scheduler.now())
        state = SessionState.ACTIVE if seconds_left > 0 else SessionState.EXPIRED
        return SessionView(state=state, session=session, seconds_left=seconds_left)

    def _publish(self, view: SessionView) -> None:
        previous = self._view
        self._view = view
        if previous.session_id != view.session_id and view.session_id is not None:
            logger.info("Class %s now shows session %s", self._class_id, view.session_id)
        for listener in list(self._listeners):
            listener(view)

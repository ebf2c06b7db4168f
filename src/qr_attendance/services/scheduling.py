from __future__ import annotations

import logging
import threading
import tkinter
from datetime import datetime
from typing import Any, Callable, Protocol, TypeVar

from qr_attendance.utils.time import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Single-threaded event loop seen by the session and scan components.

    Callbacks passed to ``call_later`` and the completion callbacks of
    ``run_async`` always run on the loop thread, so components never need
    locks around their own state.
    """

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def run_async(
        self,
        func: Callable[[], T],
        on_success: Callable[[T], None],
        on_error: Callable[[BaseException], None],
    ) -> None: ...

    def now(self) -> datetime: ...


class _TkTimerHandle:
    def __init__(self, widget: Any, delay_ms: int, callback: Callable[[], None]) -> None:
        self._widget = widget
        self._callback = callback
        self._cancelled = False
        self._job: str | None = widget.after(delay_ms, self._fire)

    def _fire(self) -> None:
        self._job = None
        if not self._cancelled:
            self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        if self._job is None:
            return
        try:
            self._widget.after_cancel(self._job)
        except Exception:  # noqa: BLE001 - widget may already be destroyed
            pass
        finally:
            self._job = None


class TkScheduler:
    """Scheduler backed by a Tk widget's ``after`` queue.

    Blocking work handed to ``run_async`` runs on a daemon thread and its
    outcome is posted back with ``after(0, ...)``; results for a destroyed
    widget are dropped.
    """

    def __init__(self, widget: Any) -> None:
        self._widget = widget

    def call_later(self, delay: float, callback: Callable[[], None]) -> _TkTimerHandle:
        return _TkTimerHandle(self._widget, max(0, int(delay * 1000)), callback)

    def run_async(
        self,
        func: Callable[[], T],
        on_success: Callable[[T], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        def _worker() -> None:
            try:
                result = func()
            except Exception as exc:  # noqa: BLE001 - handed to the loop thread
                self._post(lambda: on_error(exc))
            else:
                self._post(lambda: on_success(result))

        threading.Thread(target=_worker, daemon=True).start()

    def now(self) -> datetime:
        return utc_now()

    def _post(self, callback: Callable[[], None]) -> None:
        def _finalize() -> None:
            if not self._widget.winfo_exists():
                return
            callback()

        try:
            self._widget.after(0, _finalize)
        except (RuntimeError, tkinter.TclError):
            # Tk main loop or root window already gone; nothing left to update.
            logger.debug("Dropped async result after the UI loop stopped")

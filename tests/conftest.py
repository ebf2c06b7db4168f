from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any, Callable

import pytest

from qr_attendance.api.client import Credentials
from qr_attendance.models import MarkOutcome, MarkResult, Session

T0 = datetime(2025, 1, 6, 9, 0, 0, tzinfo=timezone.utc)


class FakeTimer:
    def __init__(self, due: datetime, order: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.order = order
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class FakeJob:
    func: Callable[[], Any]
    on_success: Callable[[Any], None]
    on_error: Callable[[BaseException], None]


class FakeScheduler:
    """Manual clock; timers fire on ``advance`` and async jobs on ``resolve``."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start
        self.timers: list[FakeTimer] = []
        self.jobs: list[FakeJob] = []
        self._order = count()

    def now(self) -> datetime:
        return self.current

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.current + timedelta(seconds=delay), next(self._order), callback)
        self.timers.append(timer)
        return timer

    def run_async(self, func, on_success, on_error) -> None:
        self.jobs.append(FakeJob(func, on_success, on_error))

    @property
    def pending_timers(self) -> list[FakeTimer]:
        return [timer for timer in self.timers if not timer.cancelled and not timer.fired]

    def advance(self, seconds: float) -> None:
        target = self.current + timedelta(seconds=seconds)
        while True:
            due = [timer for timer in self.pending_timers if timer.due <= target]
            if not due:
                break
            timer = min(due, key=lambda item: (item.due, item.order))
            self.current = timer.due
            timer.fired = True
            timer.callback()
        self.current = target

    def resolve(self, index: int = 0) -> None:
        job = self.jobs.pop(index)
        try:
            result = job.func()
        except Exception as exc:  # noqa: BLE001 - mirrors the worker thread
            job.on_error(exc)
        else:
            job.on_success(result)

    def resolve_all(self) -> None:
        while self.jobs:
            self.resolve(0)


class FakeBackend:
    def __init__(self, clock: Callable[[], datetime]) -> None:
        self._clock = clock
        self._ids = count(1)
        self.active: Session | None = None
        self.active_error: BaseException | None = None
        self.generate_error: BaseException | None = None
        self.mark_error: BaseException | None = None
        self.mark_outcome = MarkOutcome.MARKED
        self.active_calls: list[str] = []
        self.marks: list[str] = []

    def make_session(self, seconds: int, *, class_id: str = "cls-1") -> Session:
        now = self._clock()
        session_id = f"s-{next(self._ids)}"
        return Session(
            session_id=session_id,
            class_id=class_id,
            issued_at=now,
            expires_at=now + timedelta(seconds=seconds),
            payload=session_id,
        )

    def generate_session(self, credentials, class_id, duration_minutes, lecture_timing=None) -> Session:
        if self.generate_error is not None:
            raise self.generate_error
        self.active = self.make_session(duration_minutes * 60, class_id=class_id)
        return self.active

    def active_session(self, credentials, class_id) -> Session | None:
        self.active_calls.append(class_id)
        if self.active_error is not None:
            raise self.active_error
        return self.active

    def mark_attendance(self, credentials, session_id) -> MarkResult:
        self.marks.append(session_id)
        if self.mark_error is not None:
            raise self.mark_error
        return MarkResult.of(self.mark_outcome, session_id)


class FakeCamera:
    def __init__(self, frames: list[Any] | None = None, *, open_error: BaseException | None = None) -> None:
        self.frames = list(frames or [])
        self.open_error = open_error
        self.opened = False
        self.released = False
        self.reads = 0

    def open(self) -> "FakeCamera":
        if self.open_error is not None:
            raise self.open_error
        self.opened = True
        return self

    def read_frame(self) -> Any:
        self.reads += 1
        return self.frames.pop(0) if self.frames else "blank"

    def release(self) -> None:
        self.released = True


def qr_text_decoder(frame: Any) -> str | None:
    """Stand-in decoder: frames are strings and ``"QR:<id>"`` carries a payload."""

    if isinstance(frame, str) and frame.startswith("QR:"):
        return frame[3:]
    return None


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def backend(scheduler: FakeScheduler) -> FakeBackend:
    return FakeBackend(scheduler.now)


@pytest.fixture
def teacher() -> Credentials:
    return Credentials(token="teacher-token", user_id="t-1", role="teacher")


@pytest.fixture
def student() -> Credentials:
    return Credentials(token="student-token", user_id="stu-1", role="student")

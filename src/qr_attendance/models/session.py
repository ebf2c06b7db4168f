from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from qr_attendance.utils.time import seconds_until, utc_now


@dataclass(frozen=True, slots=True)
class Session:
    session_id: str
    class_id: str
    issued_at: datetime
    expires_at: datetime
    payload: str
    lecture_timing: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.session_id:
            raise ValueError("Session id must not be empty.")
        if self.expires_at <= self.issued_at:
            raise ValueError("Session must expire after it was issued.")

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def seconds_left(self, now: datetime) -> int:
        return seconds_until(self.expires_at, now)


@dataclass(frozen=True, slots=True)
class AttendanceRecord:
    student_id: str
    session_id: str
    status: str = "present"
    marked_at: datetime = field(default_factory=utc_now)


class SessionState(str, Enum):
    LOADING = "loading"
    NO_SESSION = "no_session"
    ACTIVE = "active"
    EXPIRED = "expired"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class SessionView:
    """Client-side read model of the class's current session.

    Derived from polls and the local clock only; the server stays
    authoritative for expiry whenever attendance is marked.
    """

    state: SessionState = SessionState.LOADING
    session: Optional[Session] = None
    seconds_left: int = 0
    error: Optional[str] = None
    consecutive_failures: int = 0

    @property
    def session_id(self) -> Optional[str]:
        return self.session.session_id if self.session else None

    @property
    def payload(self) -> Optional[str]:
        return self.session.payload if self.session else None

    @property
    def expires_at(self) -> Optional[datetime]:
        return self.session.expires_at if self.session else None

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE


class MarkOutcome(str, Enum):
    MARKED = "marked"
    ALREADY_MARKED = "already_marked"
    SESSION_EXPIRED = "session_expired"
    SESSION_NOT_FOUND = "session_not_found"
    UNAUTHORIZED = "unauthorized"


DEFAULT_MARK_MESSAGES: dict[MarkOutcome, str] = {
    MarkOutcome.MARKED: "Attendance marked successfully",
    MarkOutcome.ALREADY_MARKED: "Attendance already counted for this session",
    MarkOutcome.SESSION_EXPIRED: "Session has expired",
    MarkOutcome.SESSION_NOT_FOUND: "Invalid QR, try again",
    MarkOutcome.UNAUTHORIZED: "You are not allowed to mark attendance for this session",
}


@dataclass(frozen=True, slots=True)
class MarkResult:
    outcome: MarkOutcome
    message: str = ""
    session_id: Optional[str] = None

    @classmethod
    def of(cls, outcome: MarkOutcome, session_id: str | None = None, message: str | None = None) -> "MarkResult":
        # Only an expired session keeps the server wording; the other outcomes use fixed copy.
        if outcome is MarkOutcome.SESSION_EXPIRED and message:
            text = message
        else:
            text = DEFAULT_MARK_MESSAGES[outcome]
        return cls(outcome=outcome, message=text, session_id=session_id)

    @property
    def ok(self) -> bool:
        return self.outcome is MarkOutcome.MARKED

    @property
    def is_informational(self) -> bool:
        return self.outcome in (MarkOutcome.MARKED, MarkOutcome.ALREADY_MARKED)

    @property
    def tone(self) -> str:
        if self.outcome is MarkOutcome.MARKED:
            return "success"
        if self.outcome is MarkOutcome.ALREADY_MARKED:
            return "info"
        return "warning"

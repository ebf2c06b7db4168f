from .session import (
    DEFAULT_MARK_MESSAGES,
    AttendanceRecord,
    MarkOutcome,
    MarkResult,
    Session,
    SessionState,
    SessionView,
)

__all__ = [
    "AttendanceRecord",
    "DEFAULT_MARK_MESSAGES",
    "MarkOutcome",
    "MarkResult",
    "Session",
    "SessionState",
    "SessionView",
]

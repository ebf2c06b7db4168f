from .client import (
    ApiError,
    AttendanceBackend,
    Credentials,
    HttpAttendanceClient,
    TransportError,
    UnauthorizedError,
    session_from_payload,
)

__all__ = [
    "ApiError",
    "AttendanceBackend",
    "Credentials",
    "HttpAttendanceClient",
    "TransportError",
    "UnauthorizedError",
    "session_from_payload",
]

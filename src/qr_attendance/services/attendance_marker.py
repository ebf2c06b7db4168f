from __future__ import annotations

import logging

from qr_attendance.api.client import AttendanceBackend, Credentials
from qr_attendance.models import MarkOutcome, MarkResult

logger = logging.getLogger(__name__)


def session_id_from_payload(payload: str) -> str:
    # Payloads carry the session id verbatim.
    return payload.strip() if payload else ""


class AttendanceMarker:
    """Submit a decoded session id on behalf of the signed-in student."""

    def __init__(self, backend: AttendanceBackend, credentials: Credentials) -> None:
        self._backend = backend
        self._credentials = credentials

    def mark(self, payload: str) -> MarkResult:
        session_id = session_id_from_payload(payload)
        if not session_id:
            logger.info("Ignoring empty scan payload")
            return MarkResult.of(MarkOutcome.SESSION_NOT_FOUND, session_id)

        # TransportError propagates: the caller shows it once and the user retries.
        result = self._backend.mark_attendance(self._credentials, session_id)
        logger.info("Mark for session %s: %s", session_id, result.outcome.value)
        return result

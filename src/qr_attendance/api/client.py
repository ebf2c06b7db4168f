from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Mapping, Optional, Protocol

import requests

from qr_attendance.models import MarkOutcome, MarkResult, Session
from qr_attendance.utils.time import parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    """Raised when a collaborator answers with something the client cannot use."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(ApiError):
    """Raised when a request never reached the server or its answer was lost."""


class UnauthorizedError(ApiError):
    """Raised when the credentials are rejected for a non-mark call."""


@dataclass(frozen=True, slots=True)
class Credentials:
    """Identity passed explicitly into every collaborator call."""

    token: Optional[str] = None
    user_id: Optional[str] = None
    role: Optional[str] = None

    def authorization_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}


class AttendanceBackend(Protocol):
    def generate_session(
        self,
        credentials: Credentials,
        class_id: str,
        duration_minutes: int,
        lecture_timing: str | None = None,
    ) -> Session: ...

    def active_session(self, credentials: Credentials, class_id: str) -> Session | None: ...

    def mark_attendance(self, credentials: Credentials, session_id: str) -> MarkResult: ...


ERROR_KINDS: dict[str, MarkOutcome] = {
    "already_marked": MarkOutcome.ALREADY_MARKED,
    "session_expired": MarkOutcome.SESSION_EXPIRED,
    "session_not_found": MarkOutcome.SESSION_NOT_FOUND,
    "not_found": MarkOutcome.SESSION_NOT_FOUND,
    "invalid": MarkOutcome.SESSION_NOT_FOUND,
    "unauthorized": MarkOutcome.UNAUTHORIZED,
    "forbidden": MarkOutcome.UNAUTHORIZED,
}

STATUS_OUTCOMES: dict[int, MarkOutcome] = {
    400: MarkOutcome.SESSION_NOT_FOUND,
    401: MarkOutcome.UNAUTHORIZED,
    403: MarkOutcome.UNAUTHORIZED,
    404: MarkOutcome.SESSION_NOT_FOUND,
    409: MarkOutcome.ALREADY_MARKED,
    410: MarkOutcome.SESSION_EXPIRED,
}


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def session_from_payload(data: Mapping[str, Any], *, class_id: str | None = None) -> Session | None:
    """Build a :class:`Session` from an API body, or ``None`` if it carries no session."""

    session_id = _first(data, "sessionId", "session_id", "_id", "id")
    if session_id is None:
        return None

    expires_raw = _first(data, "expiresAt", "expires_at")
    if expires_raw is None:
        raise ApiError("Session response is missing its expiry time.")
    expires_at = parse_timestamp(expires_raw)

    issued_raw = _first(data, "issuedAt", "issued_at", "createdAt", "created_at")
    issued_at = parse_timestamp(issued_raw) if issued_raw is not None else utc_now()
    if issued_at >= expires_at:
        issued_at = expires_at - timedelta(seconds=1)

    resolved_class = _first(data, "classId", "class_id") or class_id or ""
    if isinstance(resolved_class, Mapping):
        resolved_class = _first(resolved_class, "_id", "id") or class_id or ""

    return Session(
        session_id=str(session_id),
        class_id=str(resolved_class),
        issued_at=issued_at,
        expires_at=expires_at,
        payload=str(_first(data, "payload", "qrPayload", "qr_payload") or session_id),
        lecture_timing=_first(data, "lectureTiming", "lecture_timing"),
    )


class HttpAttendanceClient:
    """`requests` implementation of the session issuer and mark endpoints.

    The client keeps no authentication state; every call receives the
    :class:`Credentials` it should act with.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http = session or requests.Session()

    def close(self) -> None:
        self._http.close()

    def generate_session(
        self,
        credentials: Credentials,
        class_id: str,
        duration_minutes: int,
        lecture_timing: str | None = None,
    ) -> Session:
        body: dict[str, Any] = {"classId": class_id, "durationMinutes": int(duration_minutes)}
        if lecture_timing:
            body["lectureTiming"] = lecture_timing

        response = self._request("POST", "/sessions/generate", credentials, json=body)
        if response.status_code in (401, 403):
            raise UnauthorizedError(self._error_message(response, "Only teachers can generate sessions."),
                                    status_code=response.status_code)
        if not response.ok:
            raise ApiError(self._error_message(response, "Failed to generate session."),
                           status_code=response.status_code)

        session = session_from_payload(self._json(response), class_id=class_id)
        if session is None:
            raise ApiError("Generate response did not include a session.", status_code=response.status_code)
        logger.info("Generated session %s for class %s until %s", session.session_id, class_id, session.expires_at)
        return session

    def active_session(self, credentials: Credentials, class_id: str) -> Session | None:
        response = self._request("GET", f"/sessions/active/{class_id}", credentials)
        if response.status_code == 404:
            return None
        if response.status_code in (401, 403):
            raise UnauthorizedError(self._error_message(response, "Not allowed to view this class."),
                                    status_code=response.status_code)
        if not response.ok:
            raise ApiError(self._error_message(response, "Failed to load the active session."),
                           status_code=response.status_code)

        if not response.content:
            return None
        data = self._json(response)
        if not data:
            return None
        if isinstance(data.get("session"), Mapping):
            data = data["session"]
        return session_from_payload(data, class_id=class_id)

    def mark_attendance(self, credentials: Credentials, session_id: str) -> MarkResult:
        response = self._request("POST", "/attendance/mark", credentials, json={"sessionId": session_id})
        if response.ok:
            data = self._json(response, required=False)
            return MarkResult.of(MarkOutcome.MARKED, session_id, data.get("message"))

        data = self._json(response, required=False)
        kind = str(data.get("kind") or data.get("code") or "").strip().lower()
        outcome = ERROR_KINDS.get(kind) or STATUS_OUTCOMES.get(response.status_code)
        if outcome is None:
            raise ApiError(self._error_message(response, "Error marking attendance. Please try again."),
                           status_code=response.status_code)
        return MarkResult.of(outcome, session_id, data.get("message"))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _request(self, method: str, path: str, credentials: Credentials, **kwargs: Any) -> requests.Response:
        url = f"{self._base_url}{path}"
        try:
            return self._http.request(
                method,
                url,
                headers=credentials.authorization_headers(),
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise TransportError(f"Could not reach {url}: {exc}") from exc

    @staticmethod
    def _json(response: requests.Response, *, required: bool = True) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            if not required:
                return {}
            raise ApiError("Server returned a non-JSON body.", status_code=response.status_code) from exc
        if isinstance(data, dict):
            return data
        if required and data is not None:
            raise ApiError("Server returned an unexpected body.", status_code=response.status_code)
        return {}

    @classmethod
    def _error_message(cls, response: requests.Response, fallback: str) -> str:
        message = cls._json(response, required=False).get("message")
        return str(message) if message else fallback

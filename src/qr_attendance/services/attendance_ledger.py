from __future__ import annotations

import logging
import secrets
import sqlite3
from datetime import datetime, timedelta
from typing import Callable

from qr_attendance.api.client import Credentials, UnauthorizedError
from qr_attendance.data import Database
from qr_attendance.models import AttendanceRecord, MarkOutcome, MarkResult, Session
from qr_attendance.utils.time import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

SESSION_ID_BYTES = 24


class DuplicateAttendanceError(RuntimeError):
    """Raised when a student has already been marked for the session."""


class LocalAttendanceLedger:
    """SQLite-backed session issuer and attendance ledger.

    Stands in for the remote server in offline/dev mode and in tests. It owns
    the same invariants the server does: one live session per class, sessions
    superseded rather than deleted, and at most one record per
    ``(student_id, session_id)``.
    """

    def __init__(self, database: Database, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._database = database
        self._clock = clock

    def initialize(self) -> None:
        self._database.initialize()

    def enroll(self, class_id: str, student_id: str) -> None:
        with self._database.connect() as connection:
            connection.execute(
                "INSERT OR IGNORE INTO class_enrollments (class_id, student_id) VALUES (?, ?)",
                (class_id.strip(), student_id.strip()),
            )

    # ------------------------------------------------------------------
    # Issuer
    # ------------------------------------------------------------------
    def generate_session(
        self,
        credentials: Credentials,
        class_id: str,
        duration_minutes: int,
        lecture_timing: str | None = None,
    ) -> Session:
        if credentials.role != "teacher":
            raise UnauthorizedError("Only teachers can generate session QR codes.", status_code=403)
        if duration_minutes <= 0:
            raise ValueError("Session duration must be a positive number of minutes.")

        now = self._clock()
        session_id = secrets.token_urlsafe(SESSION_ID_BYTES)
        session = Session(
            session_id=session_id,
            class_id=class_id.strip(),
            issued_at=now,
            expires_at=now + timedelta(minutes=duration_minutes),
            payload=session_id,
            lecture_timing=lecture_timing,
        )

        with self._database.connect() as connection:
            superseded = connection.execute(
                """
                UPDATE lecture_sessions
                   SET superseded_by = ?
                 WHERE class_id = ?
                   AND superseded_by IS NULL
                   AND expires_at > ?
                """,
                (session.session_id, session.class_id, format_timestamp(now)),
            ).rowcount
            connection.execute(
                """
                INSERT INTO lecture_sessions (
                    session_id, class_id, payload, lecture_timing, issued_at, expires_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    session.session_id,
                    session.class_id,
                    session.payload,
                    session.lecture_timing,
                    format_timestamp(session.issued_at),
                    format_timestamp(session.expires_at),
                ),
            )

        if superseded:
            logger.info("Superseded %d live session(s) for class %s", superseded, session.class_id)
        logger.info("Issued session %s for class %s", session.session_id, session.class_id)
        return session

    def active_session(self, credentials: Credentials, class_id: str) -> Session | None:
        now = format_timestamp(self._clock())
        with self._database.connect() as connection:
            row = connection.execute(
                """
                SELECT session_id, class_id, payload, lecture_timing, issued_at, expires_at
                  FROM lecture_sessions
                 WHERE class_id = ?
                   AND superseded_by IS NULL
                   AND expires_at > ?
              ORDER BY issued_at DESC
                 LIMIT 1
                """,
                (class_id.strip(), now),
            ).fetchone()

        return self._row_to_session(row) if row else None

    def get_session(self, session_id: str) -> Session | None:
        row = self._fetch_session_row(session_id)
        return self._row_to_session(row) if row else None

    def is_superseded(self, session_id: str) -> bool:
        row = self._fetch_session_row(session_id)
        return bool(row and row["superseded_by"])

    # ------------------------------------------------------------------
    # Marking
    # ------------------------------------------------------------------
    def mark_attendance(self, credentials: Credentials, session_id: str) -> MarkResult:
        session_id = session_id.strip()
        student_id = (credentials.user_id or "").strip()
        if credentials.role != "student" or not student_id:
            return MarkResult.of(MarkOutcome.UNAUTHORIZED, session_id)

        row = self._fetch_session_row(session_id) if session_id else None
        if row is None:
            return MarkResult.of(MarkOutcome.SESSION_NOT_FOUND, session_id)
        session = self._row_to_session(row)

        if not self._is_enrolled(session.class_id, student_id):
            return MarkResult.of(MarkOutcome.UNAUTHORIZED, session_id)

        if self._has_record(session_id, student_id):
            return MarkResult.of(MarkOutcome.ALREADY_MARKED, session_id)

        now = self._clock()
        if row["superseded_by"]:
            return MarkResult.of(
                MarkOutcome.SESSION_EXPIRED, session_id, "Session was replaced by a newer QR code"
            )
        if session.is_expired(now):
            return MarkResult.of(MarkOutcome.SESSION_EXPIRED, session_id, "Session has expired")

        try:
            self.record_attendance(AttendanceRecord(student_id=student_id, session_id=session_id, marked_at=now))
        except DuplicateAttendanceError:
            return MarkResult.of(MarkOutcome.ALREADY_MARKED, session_id)
        return MarkResult.of(MarkOutcome.MARKED, session_id)

    def record_attendance(self, record: AttendanceRecord) -> int:
        with self._database.connect() as connection:
            try:
                cursor = connection.execute(
                    """
                    INSERT INTO attendance_records (session_id, student_id, status, marked_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        record.session_id,
                        record.student_id,
                        record.status,
                        format_timestamp(record.marked_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateAttendanceError("Student already marked for this session.") from exc

        logger.info("Marked student %s present for session %s", record.student_id, record.session_id)
        return int(cursor.lastrowid)

    def list_attendance(self, session_id: str) -> list[AttendanceRecord]:
        with self._database.connect() as connection:
            rows = connection.execute(
                """
                SELECT student_id, session_id, status, marked_at
                  FROM attendance_records
                 WHERE session_id = ?
              ORDER BY marked_at ASC, id ASC
                """,
                (session_id,),
            ).fetchall()

        return [
            AttendanceRecord(
                student_id=row["student_id"],
                session_id=row["session_id"],
                status=row["status"],
                marked_at=parse_timestamp(row["marked_at"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _fetch_session_row(self, session_id: str) -> sqlite3.Row | None:
        with self._database.connect() as connection:
            return connection.execute(
                """
                SELECT session_id, class_id, payload, lecture_timing, issued_at, expires_at, superseded_by
                  FROM lecture_sessions
                 WHERE session_id = ?
                """,
                (session_id,),
            ).fetchone()

    def _has_record(self, session_id: str, student_id: str) -> bool:
        with self._database.connect() as connection:
            row = connection.execute(
                "SELECT id FROM attendance_records WHERE session_id = ? AND student_id = ?",
                (session_id, student_id),
            ).fetchone()
        return row is not None

    def _is_enrolled(self, class_id: str, student_id: str) -> bool:
        with self._database.connect() as connection:
            row = connection.execute(
                "SELECT 1 FROM class_enrollments WHERE class_id = ? AND student_id = ?",
                (class_id, student_id),
            ).fetchone()
        return row is not None

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            session_id=row["session_id"],
            class_id=row["class_id"],
            issued_at=parse_timestamp(row["issued_at"]),
            expires_at=parse_timestamp(row["expires_at"]),
            payload=row["payload"],
            lecture_timing=row["lecture_timing"],
        )

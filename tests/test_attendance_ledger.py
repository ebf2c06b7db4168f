from datetime import timedelta

import pytest
from conftest import T0

from qr_attendance.api.client import Credentials, UnauthorizedError
from qr_attendance.data import Database
from qr_attendance.models import AttendanceRecord, MarkOutcome
from qr_attendance.services import DuplicateAttendanceError, LocalAttendanceLedger


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock(T0)


@pytest.fixture
def ledger(tmp_path, clock):
    ledger = LocalAttendanceLedger(Database(tmp_path / "attendance.db"), clock=clock)
    ledger.initialize()
    ledger.enroll("cls-1", "stu-1")
    return ledger


def test_double_mark_records_once(ledger, teacher, student):
    session = ledger.generate_session(teacher, "cls-1", 10)

    first = ledger.mark_attendance(student, session.session_id)
    second = ledger.mark_attendance(student, session.session_id)

    assert first.outcome is MarkOutcome.MARKED
    assert second.outcome is MarkOutcome.ALREADY_MARKED
    records = ledger.list_attendance(session.session_id)
    assert [record.student_id for record in records] == ["stu-1"]


def test_one_minute_session_is_closed_after_sixty_one_seconds(ledger, clock, teacher, student):
    session = ledger.generate_session(teacher, "cls-1", 1)
    assert session.expires_at == T0 + timedelta(minutes=1)
    assert ledger.active_session(teacher, "cls-1") == session

    clock.now = T0 + timedelta(seconds=61)

    assert ledger.active_session(teacher, "cls-1") is None
    result = ledger.mark_attendance(student, session.session_id)
    assert result.outcome is MarkOutcome.SESSION_EXPIRED
    assert result.message == "Session has expired"
    assert ledger.list_attendance(session.session_id) == []


def test_new_session_supersedes_the_live_one(ledger, clock, teacher, student):
    first = ledger.generate_session(teacher, "cls-1", 30)
    clock.now = T0 + timedelta(minutes=2)
    second = ledger.generate_session(teacher, "cls-1", 30)

    assert ledger.active_session(student, "cls-1").session_id == second.session_id
    assert ledger.is_superseded(first.session_id)
    assert ledger.get_session(first.session_id) == first

    result = ledger.mark_attendance(student, first.session_id)
    assert result.outcome is MarkOutcome.SESSION_EXPIRED
    assert ledger.mark_attendance(student, second.session_id).outcome is MarkOutcome.MARKED


def test_marked_student_scanning_expired_session_sees_already_marked(ledger, clock, teacher, student):
    session = ledger.generate_session(teacher, "cls-1", 1)
    ledger.mark_attendance(student, session.session_id)

    clock.now = T0 + timedelta(minutes=5)

    assert ledger.mark_attendance(student, session.session_id).outcome is MarkOutcome.ALREADY_MARKED


def test_sessions_of_other_classes_are_untouched(ledger, teacher):
    other = ledger.generate_session(teacher, "cls-2", 30)
    ledger.generate_session(teacher, "cls-1", 30)

    assert not ledger.is_superseded(other.session_id)
    assert ledger.active_session(teacher, "cls-2") == other


def test_only_teachers_generate_sessions(ledger, student):
    with pytest.raises(UnauthorizedError):
        ledger.generate_session(student, "cls-1", 10)


def test_rejects_non_positive_duration(ledger, teacher):
    with pytest.raises(ValueError):
        ledger.generate_session(teacher, "cls-1", 0)


def test_mark_rejections(ledger, teacher, student):
    session = ledger.generate_session(teacher, "cls-1", 10)
    outsider = Credentials(token="x", user_id="stu-9", role="student")

    assert ledger.mark_attendance(teacher, session.session_id).outcome is MarkOutcome.UNAUTHORIZED
    assert ledger.mark_attendance(outsider, session.session_id).outcome is MarkOutcome.UNAUTHORIZED
    assert ledger.mark_attendance(student, "no-such-session").outcome is MarkOutcome.SESSION_NOT_FOUND
    assert ledger.list_attendance(session.session_id) == []


def test_record_attendance_prevents_duplicates(ledger, teacher):
    session = ledger.generate_session(teacher, "cls-1", 10)
    record = AttendanceRecord(student_id="stu-1", session_id=session.session_id, marked_at=T0)

    assert ledger.record_attendance(record) > 0
    with pytest.raises(DuplicateAttendanceError):
        ledger.record_attendance(record)


def test_session_id_is_the_qr_payload(ledger, teacher):
    session = ledger.generate_session(teacher, "cls-1", 10, "Mon 10-12")

    assert session.payload == session.session_id
    assert len(session.session_id) >= 32
    assert ledger.get_session(session.session_id).lecture_timing == "Mon 10-12"

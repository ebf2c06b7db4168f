from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import T0

from qr_attendance.models import MarkOutcome, MarkResult, Session


def test_session_must_expire_after_issue():
    with pytest.raises(ValueError):
        Session(session_id="s-1", class_id="cls-1", issued_at=T0, expires_at=T0, payload="s-1")


def test_session_expiry_is_inclusive():
    session = Session(
        session_id="s-1", class_id="cls-1", issued_at=T0, expires_at=T0 + timedelta(seconds=30), payload="s-1"
    )

    assert not session.is_expired(T0 + timedelta(seconds=29))
    assert session.is_expired(T0 + timedelta(seconds=30))
    assert session.seconds_left(T0 + timedelta(seconds=29, milliseconds=500)) == 1


def test_only_expiry_keeps_server_message():
    expired = MarkResult.of(MarkOutcome.SESSION_EXPIRED, "s-1", "Session expired at 10:00")
    duplicate = MarkResult.of(MarkOutcome.ALREADY_MARKED, "s-1", "duplicate key")

    assert expired.message == "Session expired at 10:00"
    assert duplicate.message == "Attendance already counted for this session"
    assert duplicate.is_informational
    assert not duplicate.ok
    assert expired.tone == "warning"

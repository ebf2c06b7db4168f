from __future__ import annotations

import pytest

from qr_attendance.api.client import ApiError, TransportError
from qr_attendance.models import SessionState
from qr_attendance.services import SessionTracker
from qr_attendance.services.session_tracker import NETWORK_ERROR_MESSAGE


def make_tracker(backend, student, scheduler, **kwargs) -> SessionTracker:
    options = {"poll_interval": 5.0, "tick_interval": 1.0, "failure_threshold": 3}
    options.update(kwargs)
    return SessionTracker(backend, student, "cls-1", scheduler, **options)


def test_start_publishes_loading_then_active(backend, student, scheduler):
    backend.active = backend.make_session(10)
    tracker = make_tracker(backend, student, scheduler)
    seen = []
    tracker.subscribe(lambda view: seen.append(view.state))

    tracker.start()
    assert tracker.view.state is SessionState.LOADING
    assert len(scheduler.jobs) == 1

    scheduler.resolve()

    assert tracker.view.state is SessionState.ACTIVE
    assert tracker.view.seconds_left == 10
    assert tracker.view.session_id == backend.active.session_id
    assert seen == [SessionState.LOADING, SessionState.ACTIVE]


def test_no_session_when_issuer_has_none(backend, student, scheduler):
    tracker = make_tracker(backend, student, scheduler)
    tracker.start()
    scheduler.resolve()

    assert tracker.view.state is SessionState.NO_SESSION
    assert tracker.view.session is None


def test_countdown_reaches_expired_within_one_tick(backend, student, scheduler):
    backend.active = backend.make_session(10)
    tracker = make_tracker(backend, student, scheduler)
    tracker.start()
    scheduler.resolve()

    scheduler.advance(9)
    assert tracker.view.state is SessionState.ACTIVE
    assert tracker.view.seconds_left == 1

    scheduler.advance(1)
    assert tracker.view.state is SessionState.EXPIRED
    assert tracker.view.seconds_left == 0
    assert tracker.view.session_id == backend.active.session_id


def test_polls_on_a_fixed_cadence(backend, student, scheduler):
    tracker = make_tracker(backend, student, scheduler)
    tracker.start()
    scheduler.resolve_all()

    scheduler.advance(15)
    scheduler.resolve_all()

    assert len(backend.active_calls) == 4


def test_stale_poll_response_is_discarded(backend, student, scheduler):
    old = backend.make_session(60)
    new = backend.make_session(60)
    tracker = make_tracker(backend, student, scheduler)
    tracker.start()
    tracker.refresh()
    assert len(scheduler.jobs) == 2

    backend.active = new
    scheduler.resolve(1)
    assert tracker.view.session_id == new.session_id

    backend.active = old
    scheduler.resolve(0)
    assert tracker.view.session_id == new.session_id


def test_single_failure_keeps_last_session(backend, student, scheduler):
    backend.active = backend.make_session(60)
    tracker = make_tracker(backend, student, scheduler)
    tracker.start()
    scheduler.resolve()

    backend.active_error = TransportError("connection refused")
    tracker.refresh()
    scheduler.resolve()

    assert tracker.view.state is SessionState.ACTIVE
    assert tracker.view.session is not None
    assert tracker.view.error == NETWORK_ERROR_MESSAGE
    assert tracker.view.consecutive_failures == 1


def test_consecutive_failures_clear_to_error(backend, student, scheduler):
    backend.active = backend.make_session(60)
    tracker = make_tracker(backend, student, scheduler)
    tracker.start()
    scheduler.resolve()

    backend.active_error = ApiError("Server unavailable", status_code=503)
    for _ in range(3):
        tracker.refresh()
        scheduler.resolve()

    assert tracker.view.state is SessionState.ERROR
    assert tracker.view.session is None
    assert tracker.view.error == "Server unavailable"

    backend.active_error = None
    tracker.refresh()
    scheduler.resolve()

    assert tracker.view.state is SessionState.ACTIVE
    assert tracker.view.error is None
    assert tracker.view.consecutive_failures == 0


def test_stop_cancels_timers_and_ignores_late_results(backend, student, scheduler):
    backend.active = backend.make_session(60)
    tracker = make_tracker(backend, student, scheduler)
    tracker.start()
    tracker.stop()

    scheduler.resolve()
    scheduler.advance(30)

    assert tracker.view.state is SessionState.LOADING
    assert scheduler.pending_timers == []
    assert scheduler.jobs == []


def test_rejects_threshold_below_two(backend, student, scheduler):
    with pytest.raises(ValueError):
        make_tracker(backend, student, scheduler, failure_threshold=1)

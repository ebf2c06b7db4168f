from __future__ import annotations

import pytest
from conftest import FakeCamera, qr_text_decoder

from qr_attendance.api.client import TransportError
from qr_attendance.models import MarkOutcome
from qr_attendance.services import AttendanceMarker, CameraBusyError, CameraUnavailableError, ScanCaptureLoop, ScanState
from qr_attendance.services.scan_loop import MARK_FAILED_MESSAGE, NO_SESSION_MESSAGE


@pytest.fixture
def events():
    return {"results": [], "errors": [], "states": [], "decoded": []}


def make_loop(backend, student, scheduler, camera, events, *, decoder=qr_text_decoder) -> ScanCaptureLoop:
    return ScanCaptureLoop(
        AttendanceMarker(backend, student),
        scheduler,
        lambda: camera,
        decoder=decoder,
        interval=0.9,
        on_result=events["results"].append,
        on_error=events["errors"].append,
        on_state=events["states"].append,
        on_decoded=events["decoded"].append,
    )


def test_fifth_frame_submits_exactly_once(backend, student, scheduler, events):
    camera = FakeCamera(["blank"] * 4 + ["QR:s-42"] * 6)
    loop = make_loop(backend, student, scheduler, camera, events)

    assert loop.start()
    assert camera.opened

    scheduler.advance(0.9 * 5)

    assert camera.reads == 5
    assert loop.state is ScanState.SUBMITTING
    # Sampling is torn down before the mark request has even run.
    assert camera.released
    assert scheduler.pending_timers == []
    assert backend.marks == []
    assert len(scheduler.jobs) == 1

    scheduler.advance(10)
    assert camera.reads == 5

    scheduler.resolve()

    assert backend.marks == ["s-42"]
    assert loop.submissions == 1
    assert loop.state is ScanState.MATCHED
    assert [result.outcome for result in events["results"]] == [MarkOutcome.MARKED]
    assert events["decoded"] == ["s-42"]


def test_sampling_is_halted_before_decoded_callback(backend, student, scheduler, events):
    camera = FakeCamera(["QR:s-1"])
    snapshots = []
    loop = ScanCaptureLoop(
        AttendanceMarker(backend, student),
        scheduler,
        lambda: camera,
        decoder=qr_text_decoder,
        on_decoded=lambda payload: snapshots.append((camera.released, list(scheduler.pending_timers))),
    )

    loop.start()
    scheduler.advance(0.9)

    assert snapshots == [(True, [])]


def test_unreadable_frames_never_submit(backend, student, scheduler, events):
    camera = FakeCamera()
    loop = make_loop(backend, student, scheduler, camera, events)
    loop.start()

    scheduler.advance(60)

    assert camera.reads == 66
    assert backend.marks == []
    assert scheduler.jobs == []
    assert loop.is_scanning

    loop.stop()
    assert loop.state is ScanState.IDLE
    assert camera.released
    assert scheduler.pending_timers == []


def test_camera_errors_are_reported(backend, student, scheduler, events):
    busy = make_loop(backend, student, scheduler, FakeCamera(open_error=CameraBusyError("Camera 0 is busy")), events)
    missing = make_loop(
        backend, student, scheduler, FakeCamera(open_error=CameraUnavailableError("No camera")), events
    )

    assert busy.start() is False
    assert missing.start() is False
    assert events["errors"] == ["Camera 0 is busy", "No camera"]
    assert busy.state is ScanState.IDLE
    assert scheduler.pending_timers == []


def test_decoder_crash_stops_the_scanner(backend, student, scheduler, events):
    def broken_decoder(frame):
        raise RuntimeError("bad frame")

    camera = FakeCamera()
    loop = make_loop(backend, student, scheduler, camera, events, decoder=broken_decoder)
    loop.start()
    scheduler.advance(0.9)

    assert loop.state is ScanState.IDLE
    assert camera.released
    assert events["errors"] == ["Scanner stopped: bad frame"]
    assert scheduler.pending_timers == []


def test_simulate_goes_through_the_same_gate(backend, student, scheduler, events):
    loop = make_loop(backend, student, scheduler, FakeCamera(), events)

    assert loop.simulate("s-7") is True
    assert loop.simulate("s-7") is False
    assert loop.start() is False
    assert len(scheduler.jobs) == 1

    scheduler.resolve()

    assert backend.marks == ["s-7"]
    assert loop.submissions == 1


def test_simulate_without_session_reports_error(backend, student, scheduler, events):
    loop = make_loop(backend, student, scheduler, FakeCamera(), events)

    assert loop.simulate(None) is False
    assert events["errors"] == [NO_SESSION_MESSAGE]
    assert scheduler.jobs == []


def test_simulate_stops_an_active_scan(backend, student, scheduler, events):
    camera = FakeCamera()
    loop = make_loop(backend, student, scheduler, camera, events)
    loop.start()

    loop.simulate("s-3")

    assert camera.released
    assert scheduler.pending_timers == []
    assert loop.state is ScanState.SUBMITTING


def test_transport_failure_allows_retry(backend, student, scheduler, events):
    backend.mark_error = TransportError("connection reset")
    loop = make_loop(backend, student, scheduler, FakeCamera(), events)

    loop.simulate("s-9")
    scheduler.resolve()

    assert loop.state is ScanState.IDLE
    assert events["errors"] == [MARK_FAILED_MESSAGE]
    assert events["results"] == []

    backend.mark_error = None
    assert loop.simulate("s-9") is True
    scheduler.resolve()
    assert backend.marks == ["s-9", "s-9"]
    assert events["results"][-1].outcome is MarkOutcome.MARKED


def test_already_marked_is_reported_as_result(backend, student, scheduler, events):
    backend.mark_outcome = MarkOutcome.ALREADY_MARKED
    loop = make_loop(backend, student, scheduler, FakeCamera(), events)

    loop.simulate("s-1")
    scheduler.resolve()

    result = events["results"][0]
    assert result.outcome is MarkOutcome.ALREADY_MARKED
    assert result.tone == "info"
    assert result.message == "Attendance already counted for this session"

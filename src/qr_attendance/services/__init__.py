from .attendance_ledger import DuplicateAttendanceError, LocalAttendanceLedger
from .attendance_marker import AttendanceMarker
from .camera import CameraBusyError, CameraSource, CameraUnavailableError
from .presenter import LiveSessionDisplay, LiveSessionPresenter
from .scan_loop import ScanCaptureLoop, ScanState
from .scheduling import Scheduler, TkScheduler
from .session_tracker import SessionTracker

__all__ = [
	"AttendanceMarker",
	"CameraBusyError",
	"CameraSource",
	"CameraUnavailableError",
	"DuplicateAttendanceError",
	"LiveSessionDisplay",
	"LiveSessionPresenter",
	"LocalAttendanceLedger",
	"ScanCaptureLoop",
	"ScanState",
	"Scheduler",
	"SessionTracker",
	"TkScheduler",
]

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

PACKAGE_DIR = Path(__file__).resolve().parent
SRC_DIR = PACKAGE_DIR.parent
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from qr_attendance.api.client import AttendanceBackend, Credentials, HttpAttendanceClient
from qr_attendance.config.settings import settings
from qr_attendance.data import Database
from qr_attendance.services import LocalAttendanceLedger

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
ROLES = ("teacher", "student")


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qr-attendance", description=settings.app_name)
    parser.add_argument("--role", choices=ROLES, default="teacher", help="Which screen to open.")
    parser.add_argument("--class-id", help="Class to show or follow on start-up.")
    parser.add_argument("--user-id", help="Student or teacher identifier sent with every request.")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use the local SQLite ledger instead of the attendance server.",
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default: %(default)s).")
    return parser


def build_backend(args: argparse.Namespace) -> AttendanceBackend:
    if not args.offline:
        logger.info("Using attendance server at %s", settings.api_base_url)
        return HttpAttendanceClient(settings.api_base_url, timeout=settings.request_timeout_seconds)

    ledger = LocalAttendanceLedger(Database(settings.database_path))
    ledger.initialize()
    # Offline students are enrolled on start so scanning works without roster tooling.
    if args.role == "student" and args.class_id and args.user_id:
        ledger.enroll(args.class_id, args.user_id)
    logger.info("Using local ledger at %s", settings.database_path)
    return ledger


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    credentials = Credentials(token=settings.api_token, user_id=args.user_id, role=args.role)
    backend = build_backend(args)

    from qr_attendance.ui.app import AttendanceApp

    app = AttendanceApp(backend, credentials, class_id=args.class_id)
    app.run()


if __name__ == "__main__":
    main()

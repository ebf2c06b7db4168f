from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from qr_attendance.data import Database


def test_initialize_creates_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "attendance.db"
    database = Database(db_path)
    database.initialize()
    database.initialize()

    with database.connect() as connection:
        tables = {
            row[0]
            for row in connection.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            )
        }
        migrations = connection.execute("SELECT COUNT(*) FROM schema_migrations").fetchone()[0]

    expected_tables = {
        "lecture_sessions",
        "class_enrollments",
        "attendance_records",
        "schema_migrations",
    }

    assert expected_tables.issubset(tables)
    assert migrations == 1


def test_session_rows_must_expire_after_issue(tmp_path: Path) -> None:
    database = Database(tmp_path / "attendance.db")
    database.initialize()

    with pytest.raises(sqlite3.IntegrityError):
        with database.connect() as connection:
            connection.execute(
                """
                INSERT INTO lecture_sessions (session_id, class_id, payload, issued_at, expires_at)
                VALUES ('s-1', 'cls-1', 's-1', '2025-01-06T10:00:00', '2025-01-06T10:00:00')
                """
            )

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from qr_attendance.config.user_settings_store import DEFAULT_APP_NAME, UserSettingsStore

BASE_DIR = Path(__file__).resolve().parents[3]
ENV_PATH = BASE_DIR / ".env"
load_dotenv(ENV_PATH)

APP_NAME = os.getenv("APP_NAME", DEFAULT_APP_NAME)
DEFAULT_API_BASE_URL = "http://localhost:5000/api"
MIN_POLL_FAILURE_THRESHOLD = 2
user_settings_store = UserSettingsStore()

APP_DATA_DIR = Path(user_settings_store.get("app_data_dir")).expanduser()


def _failure_threshold(raw: str) -> int:
    return max(MIN_POLL_FAILURE_THRESHOLD, int(raw))


@dataclass(frozen=True)
class Settings:
    app_name: str = APP_NAME
    api_base_url: str = (
        os.getenv("API_BASE_URL") or user_settings_store.get("api_base_url", DEFAULT_API_BASE_URL)
    )
    api_token: str | None = os.getenv("API_TOKEN") or None
    request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))
    poll_interval_seconds: float = float(os.getenv("POLL_INTERVAL_SECONDS", "5"))
    countdown_tick_seconds: float = 1.0
    scan_interval_seconds: float = float(os.getenv("SCAN_INTERVAL_SECONDS", "0.9"))
    poll_failure_threshold: int = _failure_threshold(os.getenv("POLL_FAILURE_THRESHOLD", "3"))
    default_session_minutes: int = int(
        os.getenv("DEFAULT_SESSION_MINUTES", user_settings_store.get("default_session_minutes", 120))
    )
    qr_camera_index: int = int(os.getenv("QR_CAMERA_INDEX", user_settings_store.get("qr_camera_index", 0)))
    database_path: Path = Path(os.getenv("DATABASE_PATH", str(APP_DATA_DIR / "attendance.db")))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def __repr__(self) -> str:
        return (
            f"Settings(app_name={self.app_name}, "
            f"api_base_url={self.api_base_url}, "
            f"api_token={'<set>' if self.api_token else None}, "
            f"poll_interval_seconds={self.poll_interval_seconds}, "
            f"scan_interval_seconds={self.scan_interval_seconds}, "
            f"poll_failure_threshold={self.poll_failure_threshold}, "
            f"default_session_minutes={self.default_session_minutes}, "
            f"qr_camera_index={self.qr_camera_index}, "
            f"database_path={self.database_path})"
        )


settings = Settings()


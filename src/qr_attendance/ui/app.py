from __future__ import annotations

import logging

import customtkinter as ctk

from qr_attendance.api.client import AttendanceBackend, Credentials
from qr_attendance.config.settings import settings
from qr_attendance.ui.live_session_view import LiveSessionView
from qr_attendance.ui.scan_view import ScanView
from qr_attendance.ui.theme import VS_BG

logger = logging.getLogger(__name__)


class AttendanceApp:
    def __init__(
        self,
        backend: AttendanceBackend,
        credentials: Credentials,
        *,
        class_id: str | None = None,
    ) -> None:
        try:
            from ctypes import windll  # type: ignore[attr-defined]
            windll.shcore.SetProcessDpiAwareness(1)
        except (ImportError, AttributeError):
            pass

        ctk.set_appearance_mode("dark")

        self._backend = backend
        self._root = ctk.CTk()
        self._root.title(f"{settings.app_name} ({credentials.role})")
        self._root.geometry("1080x760")
        self._root.minsize(720, 640)
        self._root.configure(fg_color=VS_BG)
        self._root.grid_rowconfigure(0, weight=1)
        self._root.grid_columnconfigure(0, weight=1)

        if credentials.role == "teacher":
            self._view: ctk.CTkFrame = LiveSessionView(self._root, backend, credentials, class_id=class_id)
        else:
            self._view = ScanView(self._root, backend, credentials, class_id=class_id)
        self._view.grid(row=0, column=0, sticky="nsew")

        self._root.protocol("WM_DELETE_WINDOW", self._on_close)
        logger.info("Started %s window for %s", credentials.role, credentials.user_id or "anonymous user")

    def _on_close(self) -> None:
        self._view.destroy()
        close = getattr(self._backend, "close", None)
        if callable(close):
            close()
        self._root.destroy()

    def run(self) -> None:
        self._root.mainloop()

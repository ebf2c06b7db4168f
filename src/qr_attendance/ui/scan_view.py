from __future__ import annotations

import logging
from tkinter import StringVar
from typing import Any, Optional

import customtkinter as ctk
from PIL import Image, ImageOps

from qr_attendance.api.client import AttendanceBackend, Credentials
from qr_attendance.config.settings import settings, user_settings_store
from qr_attendance.models import MarkResult, SessionState, SessionView
from qr_attendance.services import (
    AttendanceMarker,
    CameraSource,
    ScanCaptureLoop,
    ScanState,
    SessionTracker,
    TkScheduler,
)
from qr_attendance.ui.theme import (
    QR_FRAME_LIVE,
    TONE_COLORS,
    VS_ACCENT,
    VS_ACCENT_HOVER,
    VS_BG,
    VS_BORDER,
    VS_CARD,
    VS_DANGER,
    VS_DANGER_HOVER,
    VS_SURFACE_ALT,
    VS_TEXT,
    VS_TEXT_MUTED,
)
from qr_attendance.ui.utils import play_scan_beep_async
from qr_attendance.utils.time import format_countdown

logger = logging.getLogger(__name__)


class ScanView(ctk.CTkFrame):
    """Student screen: scan the classroom QR and show the mark outcome."""

    def __init__(
        self,
        master,
        backend: AttendanceBackend,
        credentials: Credentials,
        *,
        class_id: str | None = None,
    ) -> None:
        super().__init__(master, fg_color=VS_BG)
        self._backend = backend
        self._credentials = credentials
        self._scheduler = TkScheduler(self)
        self._tracker: Optional[SessionTracker] = None
        self._unsubscribe_tracker = None

        self._preview_size: tuple[int, int] = (420, 420)
        placeholder = Image.new("RGB", self._preview_size, color=(24, 24, 24))
        self._preview_placeholder = ctk.CTkImage(
            light_image=placeholder, dark_image=placeholder, size=self._preview_size
        )
        self._preview_image: ctk.CTkImage | None = None
        self._preview_busy = False

        self.class_id_var = StringVar(value=class_id or user_settings_store.get("last_class_id", ""))
        self._session_var = StringVar(value="Enter your class to follow its session.")
        self._status_var = StringVar(value="Scanner idle.")

        self._loop = ScanCaptureLoop(
            AttendanceMarker(backend, credentials),
            self._scheduler,
            lambda: CameraSource(settings.qr_camera_index),
            interval=settings.scan_interval_seconds,
            on_result=self._handle_result,
            on_error=self._handle_error,
            on_state=self._handle_state,
            on_frame=self._handle_frame,
            on_decoded=self._handle_decoded,
        )

        self._build_widgets()
        if self.class_id_var.get().strip():
            self._handle_follow_class()

    # ------------------------------------------------------------------
    # Layout construction
    # ------------------------------------------------------------------
    def _build_widgets(self) -> None:
        self.grid_columnconfigure(0, weight=1)
        self.grid_rowconfigure(1, weight=1)

        header = ctk.CTkFrame(self, fg_color=VS_SURFACE_ALT, corner_radius=12)
        header.grid(row=0, column=0, padx=24, pady=(24, 12), sticky="ew")
        header.grid_columnconfigure(1, weight=1)

        ctk.CTkLabel(
            header, text="Scan attendance QR", font=ctk.CTkFont(size=22, weight="bold"), text_color=VS_TEXT
        ).grid(row=0, column=0, columnspan=3, padx=16, pady=(16, 8), sticky="w")
        ctk.CTkLabel(header, text="Class", text_color=VS_TEXT_MUTED).grid(row=1, column=0, padx=(16, 8), pady=(0, 16))
        ctk.CTkEntry(header, textvariable=self.class_id_var).grid(row=1, column=1, pady=(0, 16), sticky="ew")
        ctk.CTkButton(
            header,
            text="Follow class",
            command=self._handle_follow_class,
            fg_color=VS_CARD,
            hover_color=VS_BORDER,
        ).grid(row=1, column=2, padx=16, pady=(0, 16))

        card = ctk.CTkFrame(self, fg_color=VS_CARD, corner_radius=16)
        card.grid(row=1, column=0, padx=24, pady=(0, 24), sticky="nsew")
        card.grid_columnconfigure(0, weight=1)

        self._session_label = ctk.CTkLabel(
            card, textvariable=self._session_var, text_color=VS_TEXT_MUTED, font=ctk.CTkFont(size=16)
        )
        self._session_label.grid(row=0, column=0, padx=16, pady=(16, 8))

        self._preview_frame = ctk.CTkFrame(
            card, corner_radius=18, fg_color=VS_SURFACE_ALT, border_width=4, border_color=VS_BORDER
        )
        self._preview_frame.grid(row=1, column=0, padx=16, pady=8)
        self._preview_label = ctk.CTkLabel(
            self._preview_frame,
            text="Camera preview inactive",
            text_color=VS_TEXT_MUTED,
            image=self._preview_placeholder,
            compound="center",
        )
        self._preview_label.pack(padx=12, pady=12)

        self._status_label = ctk.CTkLabel(
            card,
            textvariable=self._status_var,
            text_color=VS_TEXT_MUTED,
            wraplength=self._preview_size[0],
            font=ctk.CTkFont(size=16),
        )
        self._status_label.grid(row=2, column=0, padx=16, pady=(4, 8))

        buttons = ctk.CTkFrame(card, fg_color="transparent")
        buttons.grid(row=3, column=0, padx=16, pady=(0, 16))
        self._scan_button = ctk.CTkButton(
            buttons,
            text="Start scanner",
            command=self._handle_toggle_scanner,
            fg_color=VS_ACCENT,
            hover_color=VS_ACCENT_HOVER,
        )
        self._scan_button.grid(row=0, column=0, padx=(0, 8))
        self._simulate_button = ctk.CTkButton(
            buttons,
            text="Simulate scan",
            command=self._handle_simulate,
            fg_color=VS_CARD,
            hover_color=VS_BORDER,
        )
        self._simulate_button.grid(row=0, column=1)

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------
    def _set_status(self, message: str, tone: str = "info") -> None:
        self._status_var.set(message)
        self._status_label.configure(text_color=TONE_COLORS.get(tone, VS_TEXT_MUTED))

    def _configure_scan_control(self, *, running: bool, busy: bool = False) -> None:
        if running:
            self._scan_button.configure(
                state="normal", text="Stop scanner", fg_color=VS_DANGER, hover_color=VS_DANGER_HOVER
            )
        else:
            self._scan_button.configure(
                state="disabled" if busy else "normal",
                text="Start scanner",
                fg_color=VS_ACCENT,
                hover_color=VS_ACCENT_HOVER,
            )
        self._simulate_button.configure(state="disabled" if busy else "normal")

    def _reset_preview(self) -> None:
        self._preview_label.configure(image=self._preview_placeholder, text="Camera preview inactive")
        self._preview_image = None
        self._preview_busy = False
        self._preview_frame.configure(border_color=VS_BORDER)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def _handle_follow_class(self) -> None:
        class_id = self.class_id_var.get().strip()
        if not class_id:
            self._session_var.set("Please select a class")
            return

        self._detach_tracker()
        user_settings_store.update(last_class_id=class_id)
        self._tracker = SessionTracker(
            self._backend,
            self._credentials,
            class_id,
            self._scheduler,
            poll_interval=settings.poll_interval_seconds,
            tick_interval=settings.countdown_tick_seconds,
            failure_threshold=settings.poll_failure_threshold,
        )
        self._unsubscribe_tracker = self._tracker.subscribe(self._render_session)
        self._tracker.start()

    def _handle_toggle_scanner(self) -> None:
        if self._loop.is_scanning:
            self._loop.stop()
            self._set_status("Scanner stopped.")
            return
        self._scan_button.configure(state="disabled")
        self._set_status("Starting scanner…")
        if self._loop.start():
            self._set_status("Point the camera at the QR code on the screen.")

    def _handle_simulate(self) -> None:
        session_id = self._tracker.view.session_id if self._tracker is not None else None
        if self._loop.simulate(session_id):
            self._set_status("Submitting attendance…")

    # ------------------------------------------------------------------
    # Scan loop callbacks (all delivered on the Tk thread)
    # ------------------------------------------------------------------
    def _handle_state(self, state: ScanState) -> None:
        if not self.winfo_exists():
            return
        if state is ScanState.SCANNING:
            self._configure_scan_control(running=True)
        elif state is ScanState.SUBMITTING:
            # Last frame stays visible while the mark is in flight.
            self._configure_scan_control(running=False, busy=True)
        else:
            self._configure_scan_control(running=False)
            if state is ScanState.IDLE:
                self._reset_preview()

    def _handle_decoded(self, _payload: str) -> None:
        play_scan_beep_async()
        self._preview_frame.configure(border_color=QR_FRAME_LIVE)
        self._set_status("QR detected. Submitting attendance…")

    def _handle_result(self, result: MarkResult) -> None:
        if not self.winfo_exists():
            return
        self._set_status(result.message, tone=result.tone)
        # Refresh the session so an expiry reported by the server shows up.
        if self._tracker is not None:
            self._tracker.refresh()

    def _handle_error(self, message: str) -> None:
        if not self.winfo_exists():
            return
        self._set_status(message, tone="warning")
        self._configure_scan_control(running=False)
        self._reset_preview()

    def _handle_frame(self, frame: Any) -> None:
        if not self.winfo_exists() or self._preview_busy or frame is None:
            return

        self._preview_busy = True
        try:
            import cv2  # type: ignore[import-not-found]

            rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            square_image = ImageOps.fit(
                Image.fromarray(rgb_frame),
                self._preview_size,
                method=Image.Resampling.LANCZOS,
                centering=(0.5, 0.5),
            )
            self._preview_image = ctk.CTkImage(
                light_image=square_image, dark_image=square_image, size=self._preview_size
            )
            self._preview_label.configure(image=self._preview_image, text="")
        except (ImportError, ValueError) as exc:
            logger.debug("Skipping preview frame: %s", exc)
        finally:
            self._preview_busy = False

    def _render_session(self, view: SessionView) -> None:
        if not self.winfo_exists():
            return
        if view.state is SessionState.ACTIVE:
            self._session_var.set(f"Session open, closes in {format_countdown(view.seconds_left)}")
            self._session_label.configure(text_color=TONE_COLORS["success"])
        elif view.state is SessionState.EXPIRED:
            self._session_var.set("The current session has expired.")
            self._session_label.configure(text_color=TONE_COLORS["warning"])
        elif view.state is SessionState.NO_SESSION:
            self._session_var.set("No active lecture")
            self._session_label.configure(text_color=VS_TEXT_MUTED)
        elif view.state is SessionState.ERROR:
            self._session_var.set(view.error or "Could not load the live session")
            self._session_label.configure(text_color=TONE_COLORS["warning"])
        else:
            self._session_var.set("Loading session…")
            self._session_label.configure(text_color=VS_TEXT_MUTED)

    def _detach_tracker(self) -> None:
        if self._unsubscribe_tracker is not None:
            self._unsubscribe_tracker()
            self._unsubscribe_tracker = None
        if self._tracker is not None:
            self._tracker.stop()
        self._tracker = None

    def destroy(self) -> None:  # pragma: no cover - lifecycle hook
        self._loop.close()
        self._detach_tracker()
        super().destroy()

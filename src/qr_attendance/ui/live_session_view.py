from __future__ import annotations

import logging
import tkinter.filedialog as filedialog
from tkinter import StringVar
from typing import Optional

import customtkinter as ctk
from PIL import Image

from qr_attendance.api.client import AttendanceBackend, Credentials
from qr_attendance.config.settings import settings, user_settings_store
from qr_attendance.models import Session
from qr_attendance.services import LiveSessionDisplay, LiveSessionPresenter, SessionTracker, TkScheduler
from qr_attendance.services.qr_codec import save_payload_image
from qr_attendance.ui.theme import (
    QR_FRAME_EXPIRED,
    QR_FRAME_LIVE,
    TONE_COLORS,
    VS_ACCENT,
    VS_ACCENT_HOVER,
    VS_BG,
    VS_BORDER,
    VS_CARD,
    VS_SURFACE_ALT,
    VS_TEXT,
    VS_TEXT_MUTED,
    VS_WARNING,
)

logger = logging.getLogger(__name__)

MIN_SESSION_MINUTES = 1
MAX_SESSION_MINUTES = 240


class LiveSessionView(ctk.CTkFrame):
    """Teacher screen: generate a session and keep its QR on display."""

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
        self._presenter: Optional[LiveSessionPresenter] = None
        self._unsubscribe_display = None

        self._qr_size: tuple[int, int] = (360, 360)
        placeholder = Image.new("RGB", self._qr_size, color=(24, 24, 24))
        self._qr_placeholder = ctk.CTkImage(light_image=placeholder, dark_image=placeholder, size=self._qr_size)
        self._qr_image: ctk.CTkImage | None = None
        self._qr_source: Image.Image | None = None

        self.class_id_var = StringVar(value=class_id or user_settings_store.get("last_class_id", ""))
        self.duration_var = StringVar(value=str(settings.default_session_minutes))
        self.lecture_timing_var = StringVar()
        self._headline_var = StringVar(value="Enter a class to show its live session.")
        self._countdown_var = StringVar(value="")
        self._banner_var = StringVar(value="")

        self._build_widgets()
        if self.class_id_var.get().strip():
            self._handle_track_class()

    # ------------------------------------------------------------------
    # Layout construction
    # ------------------------------------------------------------------
    def _build_widgets(self) -> None:
        self.grid_columnconfigure(0, weight=1)
        self.grid_rowconfigure(1, weight=1)
        header_font = ctk.CTkFont(size=22, weight="bold")

        form = ctk.CTkFrame(self, fg_color=VS_SURFACE_ALT, corner_radius=12)
        form.grid(row=0, column=0, padx=24, pady=(24, 12), sticky="ew")
        for column in range(4):
            form.grid_columnconfigure(column, weight=1)

        ctk.CTkLabel(form, text="Live attendance QR", font=header_font, text_color=VS_TEXT).grid(
            row=0, column=0, columnspan=4, padx=16, pady=(16, 8), sticky="w"
        )

        self._add_field(form, "Class", self.class_id_var, row=1, column=0)
        self._add_field(form, "Duration (minutes)", self.duration_var, row=1, column=1)
        self._add_field(form, "Lecture timing", self.lecture_timing_var, row=1, column=2)

        buttons = ctk.CTkFrame(form, fg_color="transparent")
        buttons.grid(row=2, column=3, padx=16, pady=(0, 16), sticky="e")
        ctk.CTkButton(
            buttons,
            text="Show class",
            command=self._handle_track_class,
            fg_color=VS_CARD,
            hover_color=VS_BORDER,
        ).grid(row=0, column=0, padx=(0, 8))
        self._generate_button = ctk.CTkButton(
            buttons,
            text="Generate session",
            command=self._handle_generate,
            fg_color=VS_ACCENT,
            hover_color=VS_ACCENT_HOVER,
        )
        self._generate_button.grid(row=0, column=1)

        card = ctk.CTkFrame(self, fg_color=VS_CARD, corner_radius=16)
        card.grid(row=1, column=0, padx=24, pady=(0, 24), sticky="nsew")
        card.grid_columnconfigure(0, weight=1)

        self._banner_label = ctk.CTkLabel(card, textvariable=self._banner_var, text_color=VS_WARNING)
        self._banner_label.grid(row=0, column=0, padx=16, pady=(12, 0))

        self._headline_label = ctk.CTkLabel(
            card, textvariable=self._headline_var, font=ctk.CTkFont(size=20), text_color=VS_TEXT
        )
        self._headline_label.grid(row=1, column=0, padx=16, pady=(8, 4))

        self._qr_frame = ctk.CTkFrame(card, corner_radius=18, fg_color=VS_SURFACE_ALT, border_width=4,
                                      border_color=VS_BORDER)
        self._qr_frame.grid(row=2, column=0, padx=16, pady=8)
        self._qr_label = ctk.CTkLabel(self._qr_frame, text="", image=self._qr_placeholder)
        self._qr_label.pack(padx=12, pady=12)

        ctk.CTkLabel(
            card,
            textvariable=self._countdown_var,
            font=ctk.CTkFont(size=36, weight="bold"),
            text_color=VS_TEXT,
        ).grid(row=3, column=0, padx=16, pady=(4, 4))

        self._save_button = ctk.CTkButton(
            card,
            text="Save QR image",
            command=self._handle_save_qr,
            state="disabled",
            fg_color=VS_ACCENT,
            hover_color=VS_ACCENT_HOVER,
        )
        self._save_button.grid(row=4, column=0, padx=16, pady=(4, 16))

    @staticmethod
    def _add_field(frame: ctk.CTkFrame, label: str, variable: StringVar, *, row: int, column: int) -> None:
        container = ctk.CTkFrame(frame, fg_color="transparent")
        container.grid(row=row, column=column, padx=16, pady=(0, 12), sticky="ew")
        container.grid_columnconfigure(0, weight=1)
        ctk.CTkLabel(container, text=label, text_color=VS_TEXT_MUTED).grid(row=0, column=0, sticky="w")
        ctk.CTkEntry(container, textvariable=variable).grid(row=1, column=0, sticky="ew")

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def _handle_track_class(self) -> None:
        class_id = self.class_id_var.get().strip()
        if not class_id:
            self._banner_var.set("Please select a class")
            return

        self._detach_presenter()
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
        self._presenter = LiveSessionPresenter(self._tracker)
        self._unsubscribe_display = self._presenter.subscribe(self._render)
        self._render(self._presenter.display)
        self._presenter.start()

    def _handle_generate(self) -> None:
        if self._presenter is None:
            self._handle_track_class()
        if self._presenter is None:
            return

        try:
            duration = int(self.duration_var.get().strip())
        except ValueError:
            self._banner_var.set("Duration must be a whole number of minutes.")
            return
        if not MIN_SESSION_MINUTES <= duration <= MAX_SESSION_MINUTES:
            self._banner_var.set(f"Duration must be between {MIN_SESSION_MINUTES} and {MAX_SESSION_MINUTES} minutes.")
            return

        started = self._presenter.generate(
            duration,
            lecture_timing=self.lecture_timing_var.get().strip() or None,
            on_done=self._handle_generated,
        )
        if started:
            self._generate_button.configure(state="disabled", text="Generating...")

    def _handle_generated(self, session: Session | None, error: BaseException | None) -> None:
        if not self.winfo_exists():
            return
        self._generate_button.configure(state="normal", text="Generate session")
        if session is not None:
            self._banner_var.set("")
            self.lecture_timing_var.set("")

    def _handle_save_qr(self) -> None:
        tracker = self._tracker
        payload = tracker.view.payload if tracker is not None else None
        if not payload:
            return
        target = filedialog.asksaveasfilename(
            defaultextension=".png",
            initialfile=f"session-qr-{tracker.view.session_id}.png",
            filetypes=[("PNG image", "*.png")],
        )
        if target:
            save_payload_image(payload, target)
            logger.info("Saved session QR to %s", target)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def _render(self, display: LiveSessionDisplay) -> None:
        if not self.winfo_exists():
            return
        self._headline_var.set(display.headline)
        self._headline_label.configure(text_color=TONE_COLORS.get(display.tone, VS_TEXT))
        self._countdown_var.set(display.countdown)
        self._banner_var.set(display.banner or "")

        if display.qr_image is not None:
            if display.qr_image is not self._qr_source:
                self._qr_source = display.qr_image
                self._qr_image = ctk.CTkImage(
                    light_image=display.qr_image, dark_image=display.qr_image, size=self._qr_size
                )
                self._qr_label.configure(image=self._qr_image)
            self._qr_frame.configure(border_color=QR_FRAME_LIVE if display.qr_live else QR_FRAME_EXPIRED)
            self._save_button.configure(state="normal")
        else:
            self._qr_image = None
            self._qr_source = None
            self._qr_label.configure(image=self._qr_placeholder)
            self._qr_frame.configure(border_color=VS_BORDER)
            self._save_button.configure(state="disabled")

    def _detach_presenter(self) -> None:
        if self._unsubscribe_display is not None:
            self._unsubscribe_display()
            self._unsubscribe_display = None
        if self._presenter is not None:
            self._presenter.close()
        self._presenter = None
        self._tracker = None

    def destroy(self) -> None:  # pragma: no cover - lifecycle hook
        self._detach_presenter()
        super().destroy()

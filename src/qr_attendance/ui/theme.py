from __future__ import annotations

# Surfaces
VS_BG = "#1E1E1E"
VS_SURFACE = "#252526"
VS_SURFACE_ALT = "#2D2D30"
VS_CARD = "#2F2F33"

# Borders
VS_BORDER = "#3C3C3C"
QR_FRAME_LIVE = "#6A9955"
QR_FRAME_EXPIRED = "#F48771"

# Accent colors
VS_ACCENT = "#0E639C"
VS_ACCENT_HOVER = "#1177BB"
VS_DANGER = "#A1260D"
VS_DANGER_HOVER = "#C72E0F"

# Text colors
VS_TEXT = "#F3F3F3"
VS_TEXT_MUTED = "#9DA5B4"

# Status colors
VS_SUCCESS = "#6A9955"
VS_WARNING = "#F48771"
VS_INFO = "#3794FF"

TONE_COLORS = {
    "info": VS_INFO,
    "success": VS_SUCCESS,
    "warning": VS_WARNING,
    "muted": VS_TEXT_MUTED,
}

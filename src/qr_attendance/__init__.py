"""Time-boxed QR attendance sessions: live presenter, scan loop and marker."""

__version__ = "0.1.0"

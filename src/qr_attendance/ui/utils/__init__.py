from .audio import play_scan_beep_async

__all__ = ["play_scan_beep_async"]

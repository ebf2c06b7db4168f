from .time import (
    format_countdown,
    format_timestamp,
    parse_timestamp,
    seconds_until,
    utc_now,
)

__all__ = [
    "format_countdown",
    "format_timestamp",
    "parse_timestamp",
    "seconds_until",
    "utc_now",
]

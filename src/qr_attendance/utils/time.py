from __future__ import annotations

import math
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_timestamp(value: datetime | str | int | float) -> datetime:
    """Coerce an API timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (with or without a trailing ``Z``) and
    epoch milliseconds, which is what JavaScript backends serialise by default.
    """

    if isinstance(value, datetime):
        return _as_utc(value)

    if isinstance(value, bool):
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)

    if isinstance(value, str):
        candidate = value.strip()
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        candidate = candidate.replace(" ", "T", 1)
        try:
            return _as_utc(datetime.fromisoformat(candidate))
        except ValueError:
            for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f"):
                try:
                    return _as_utc(datetime.strptime(value.strip(), fmt))
                except ValueError:
                    continue

    raise ValueError(f"Unsupported timestamp value: {value!r}")


def format_timestamp(moment: datetime) -> str:
    return _as_utc(moment).isoformat(timespec="microseconds")


def seconds_until(moment: datetime, now: datetime) -> int:
    """Whole seconds left until ``moment``, rounded up and never negative."""

    remaining = (_as_utc(moment) - _as_utc(now)).total_seconds()
    if remaining <= 0:
        return 0
    return int(math.ceil(remaining))


def format_countdown(seconds: int) -> str:
    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours:d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


# src/daynote/core/clock.py

from __future__ import annotations

import secrets
import string
import time
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from .ports import Clock

_ID_ALPHABET = string.digits + string.ascii_lowercase


class SystemClock:
    """
    Wall clock with a single canonical timezone for calendar dates.

    "today" is always resolved in `tz` so that date-keyed logic never depends
    on the host's local offset or DST transitions.
    """

    def __init__(self, tz: str | None = "UTC") -> None:
        self._tz = ZoneInfo(tz) if tz else timezone.utc

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def today(self) -> date:
        return datetime.now(self._tz).date()


class TimestampIdGenerator:
    """
    Opaque ids shaped like "<epoch millis><9 base-36 chars>".

    Uniqueness comes from the random suffix; the timestamp prefix only keeps
    ids roughly sortable by creation time.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def __call__(self) -> str:
        suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
        return f"{self._clock.now_ms()}{suffix}"


def iso_utc_from_ms(ms: int) -> str:
    """Format epoch millis like JavaScript's Date.toISOString()."""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return f"{dt:%Y-%m-%dT%H:%M:%S}.{ms % 1000:03d}Z"

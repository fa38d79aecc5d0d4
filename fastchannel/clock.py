"""Wall-clock helpers. All scheduling instants are UTC with millisecond precision."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime truncated to milliseconds.

    Naive datetimes are taken to already be in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def utc_now() -> datetime:
    return to_utc(datetime.now(timezone.utc))


def plus_ms(value: datetime, duration_ms: int) -> datetime:
    return value + timedelta(milliseconds=duration_ms)


def elapsed_ms(start: datetime, end: datetime) -> int:
    return int((end - start) / timedelta(milliseconds=1))

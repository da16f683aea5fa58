"""Datetime helpers shared across the application."""

from __future__ import annotations

from datetime import UTC, datetime

__all__ = [
    "utcnow",
    "ensure_utc",
    "serialize_datetime",
    "parse_datetime",
    "coerce_timestamp",
    "age_in_days",
]

_SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to ISO 8601 in UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC).isoformat()
    return value.astimezone(UTC).isoformat()


def parse_datetime(value: str | None, *, assume_utc: bool = True) -> datetime | None:
    """Parse an ISO 8601 string into a ``datetime`` instance."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None and assume_utc:
        return parsed.replace(tzinfo=UTC)
    return parsed


def coerce_timestamp(value: object) -> datetime | None:
    """Read a timestamp stored as ISO text or epoch milliseconds.

    Older payloads stored epoch-millisecond integers, newer ones ISO strings.
    Anything unreadable yields ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        return datetime.fromtimestamp(value / 1000.0, tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return coerce_timestamp(int(text))
        try:
            return parse_datetime(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def age_in_days(then: datetime | None, now: datetime) -> float:
    """Return elapsed days between ``then`` and ``now`` (infinite when unknown)."""
    if then is None:
        return float("inf")
    delta = now - then
    return delta.total_seconds() / _SECONDS_PER_DAY

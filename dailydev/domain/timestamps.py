"""ISO-8601 helpers for ledger timestamps and provider payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render ``value`` as UTC ISO-8601 with a ``Z`` suffix (``2025-12-01T00:00:00Z``)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    timespec = "seconds" if value.microsecond == 0 else "milliseconds"
    return value.isoformat(timespec=timespec).replace("+00:00", "Z")


def format_write_marker(value: datetime) -> str:
    """Fixed-width UTC rendering so ``updated_at`` strings sort chronologically."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO strings, epoch milliseconds or datetimes into aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp: {value!r}") from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_epoch_seconds(value: Any) -> Optional[datetime]:
    """Stripe reports instants as integer seconds since the epoch."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)

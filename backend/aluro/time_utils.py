# Overview: UTC timestamp helpers; every datetime column stores naive UTC.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_from_now(days: int) -> datetime:
    """Expiry timestamp for invitations and similar time-boxed rows."""
    return utcnow() + timedelta(days=days)


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse discount windows and other client-sent timestamps.

    Accepts "2026-05-01", "2026-05-01T09:30", "...Z" and "...+02:00".
    Values without an offset are taken as UTC. Blank input gives None.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """API timestamp format: second precision with a trailing Z."""
    if dt is None:
        return None
    stamp = _as_utc_naive(dt).replace(microsecond=0)
    return stamp.isoformat() + "Z"


def from_unix_timestamp(value) -> Optional[datetime]:
    """Stripe sends epoch seconds."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)

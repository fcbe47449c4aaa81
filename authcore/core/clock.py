"""
Single clock source for every expiry decision.

Token and invitation expiry is checked lazily at use time, so all
comparisons must read the same clock.  Tests patch `utcnow` in the
module under test to pin boundaries.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps (SQLite drops the offset)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(expires_at: datetime | None, now: datetime) -> bool:
    """Expired means strictly past the deadline; the deadline itself is valid."""
    if expires_at is None:
        return True
    return now > as_utc(expires_at)

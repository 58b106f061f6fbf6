"""UTC helpers.

SQLite (and Postgres ``timestamp without time zone``) hand back naive datetimes,
so anything read from the store is normalised here before it is compared with
``utcnow()``.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; convert an aware one to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_expired(valid_until: datetime, now: datetime | None = None) -> bool:
    return ensure_utc(valid_until) <= (now or utcnow())

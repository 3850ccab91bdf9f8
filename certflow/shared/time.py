from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def isoformat_or_none(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


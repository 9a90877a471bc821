from datetime import datetime, timezone

def utc_now() -> datetime:
    """Current time in UTC with tzinfo."""
    return datetime.now(timezone.utc)

def as_utc(value: datetime) -> datetime:
    """Attaches UTC to naive datetimes coming back from drivers without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

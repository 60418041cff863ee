from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to a naive datetime; aware values are returned unchanged.

    Motor hands back naive datetimes. Anything compared with utcnow() or a
    kickoff must go through here first.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """ensure_utc for optional response fields, so JSON carries '+00:00'."""
    if dt is None:
        return None
    return ensure_utc(dt)


def parse_utc(value: str | datetime) -> datetime:
    """ISO 8601 string (Z suffix allowed) or datetime to aware UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def to_iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    return str(value)


def season_for(dt: datetime, rollover_month: int = 9) -> int:
    """NFL season label for a date: games from January onward belong to the
    previous calendar year's season until the rollover month."""
    dt = ensure_utc(dt)
    return dt.year if dt.month >= rollover_month else dt.year - 1

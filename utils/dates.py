"""
Date helpers shared by milestones, reminders and the activity timeline.
Everything is handled as naive UTC, the way the models store it.
"""
from datetime import date, datetime, timezone
from typing import Optional


def parse_date(value) -> Optional[date]:
    """YYYY-MM-DD, full ISO timestamps, date or datetime -> date. None when unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value).date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_datetime(value) -> Optional[datetime]:
    """ISO string, date or datetime -> naive UTC datetime. None when unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return to_naive_utc(datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

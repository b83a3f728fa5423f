"""Wall-clock helpers. Times are naive UTC, matching what Mongo hands back."""

from datetime import datetime, timedelta, timezone

DRAW_WEEKDAY = 0  # Monday
DRAW_HOUR_UTC = 16


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def next_draw_at(now: datetime | None = None) -> datetime:
    """Next Monday 16:00 UTC strictly after ``now``."""
    now = now or utcnow()
    days_ahead = (DRAW_WEEKDAY - now.weekday()) % 7
    candidate = start_of_day(now + timedelta(days=days_ahead)).replace(hour=DRAW_HOUR_UTC)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


def draw_id_for(moment: datetime) -> str:
    return moment.date().isoformat()

"""Activity feed and quest counters fed after successful settlements.

Both are side channels: a failure here is logged and never undoes or fails
the settlement that triggered it.
"""

from typing import Any

from movieclub.core.locks import entity_lock
from movieclub.core.logging import get_logger
from movieclub.core.timeutil import utcnow
from movieclub.models.activity import ActivityEntry, QuestProgress

log = get_logger(__name__)


async def log_event(
    user_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Append to the activity collection."""
    try:
        await ActivityEntry(
            user_id=user_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata or {},
        ).insert()
    except Exception:
        log.exception("activity_write_failed", event_type=event_type, entity_id=entity_id)


async def record_quest_progress(user_id: str, event: str, amount: int = 1) -> None:
    """Bump the user's counter for ``event``."""
    try:
        async with entity_lock(f"quest:{user_id}:{event}"):
            row = await QuestProgress.find_one(QuestProgress.user_id == user_id, QuestProgress.event == event)
            if row is None:
                await QuestProgress(user_id=user_id, event=event, total=amount).insert()
            else:
                row.total += amount
                row.updated_at = utcnow()
                await row.save()
    except Exception:
        log.exception("quest_progress_failed", user_id=user_id, event=event)


async def get_quest_progress(user_id: str) -> dict[str, int]:
    rows = await QuestProgress.find(QuestProgress.user_id == user_id).to_list()
    return {r.event: r.total for r in rows}

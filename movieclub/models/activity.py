from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field

from movieclub.core.timeutil import utcnow


class ActivityEntry(Document):
    user_id: str | None = None  # optional for system events
    event_type: str
    entity_type: str
    entity_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "activity"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("entity_type", 1), ("entity_id", 1)],
        ]


class QuestProgress(Document):
    """Running counter of one event kind for one user."""
    user_id: str
    event: str
    total: int = 0
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "quest_progress"
        indexes = [
            [("user_id", 1), ("event", 1)],
        ]

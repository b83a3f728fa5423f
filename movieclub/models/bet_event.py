from datetime import datetime

from beanie import Document
from pydantic import Field

from movieclub.core.timeutil import utcnow


class BetEvent(Document):
    """Two-sided prediction bet with decimal odds per side."""
    title: str
    side_a: str
    side_b: str
    odds_a: float
    odds_b: float
    min_bet: int = 1
    max_bet: int = 100
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "bet_events"

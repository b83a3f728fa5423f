from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field

from movieclub.core.timeutil import utcnow


class LotteryTicket(Document):
    draw_id: Indexed(str)
    user_id: str
    user_name: str = ""
    purchased_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "lottery_tickets"


class LotteryDraw(Document):
    """Result for one weekly period; written once, the first time the period is observed as over."""
    draw_id: Indexed(str, unique=True)
    winner_user_id: str | None = None
    winner_user_name: str | None = None
    prize_pool: int = 0
    ticket_count: int = 0
    drawn_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "lottery_draws"

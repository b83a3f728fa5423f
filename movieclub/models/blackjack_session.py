from datetime import datetime
from enum import Enum

from beanie import Document, Indexed
from pydantic import BaseModel, Field

from movieclub.core.timeutil import utcnow


class PlayingCard(BaseModel):
    suit: str
    rank: str


HIDDEN_CARD = PlayingCard(suit="?", rank="?")


class BlackjackStatus(str, Enum):
    PLAYER_TURN = "player_turn"
    DEALER_TURN = "dealer_turn"
    RESOLVED = "resolved"


class BlackjackSession(Document):
    """The one hand in progress for a user. Deleted once resolved."""
    user_id: Indexed(str, unique=True)
    deck: list[PlayingCard] = Field(default_factory=list)
    player_hands: list[list[PlayingCard]] = Field(default_factory=list)
    current_hand_index: int = 0
    dealer_hand: list[PlayingCard] = Field(default_factory=list)
    bet: int  # per hand
    status: BlackjackStatus = BlackjackStatus.PLAYER_TURN
    result: str | None = None
    payout: int | None = None
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "blackjack_sessions"

    @property
    def current_hand(self) -> list[PlayingCard]:
        return self.player_hands[self.current_hand_index]

    @property
    def is_split(self) -> bool:
        return len(self.player_hands) > 1

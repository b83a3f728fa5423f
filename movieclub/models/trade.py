from datetime import datetime
from enum import Enum

from beanie import Document
from pydantic import Field

from movieclub.core.timeutil import utcnow


class TradeStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DENIED = "denied"


class TradeOffer(Document):
    initiator_user_id: str
    initiator_name: str = ""
    counterparty_user_id: str
    counterparty_name: str = ""
    offered_card_ids: list[str] = Field(default_factory=list)
    requested_card_ids: list[str] = Field(default_factory=list)
    offered_credits: int = 0  # initiator -> counterparty
    requested_credits: int = 0  # counterparty -> initiator
    status: TradeStatus = TradeStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: datetime | None = None

    class Settings:
        name = "trades"
        indexes = [
            [("initiator_user_id", 1), ("status", 1)],
            [("counterparty_user_id", 1), ("status", 1)],
        ]

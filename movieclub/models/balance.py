from datetime import datetime
from enum import Enum

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel

from movieclub.core.timeutil import utcnow


class Currency(str, Enum):
    CREDITS = "credits"
    STARDUST = "stardust"
    PRISMS = "prisms"


class Balance(Document):
    """Current balance per (user, currency); updated together with the ledger."""
    user_id: str
    currency: Currency = Currency.CREDITS
    balance: int = 0
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "balances"
        indexes = [
            IndexModel([("user_id", ASCENDING), ("currency", ASCENDING)], unique=True),
        ]

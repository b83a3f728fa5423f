from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field

from movieclub.core.timeutil import utcnow
from movieclub.models.balance import Currency


class LedgerEntry(Document):
    """Append-only record of one balance change. Never updated or deleted."""
    user_id: str
    currency: Currency = Currency.CREDITS
    amount: int  # positive = credit, negative = debit
    balance_after: int
    reason: str  # see movieclub.services.ledger.REASON_CONTEXT
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "ledger"
        indexes = [
            [("user_id", 1), ("currency", 1), ("created_at", -1)],
            [("user_id", 1), ("reason", 1), ("created_at", -1)],
        ]

from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field

from movieclub.core.timeutil import utcnow


class Listing(Document):
    """A card offered for sale. At most one per card."""
    card_id: Indexed(str, unique=True)
    seller_user_id: str
    asking_price: int
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "listings"


class BuyOrder(Document):
    """Standing request for any card of a character; offer_price 0 means a gift request."""
    requester_user_id: str
    character_id: Indexed(str)
    offer_price: int = 0
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "buy_orders"

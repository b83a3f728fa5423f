from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field

from movieclub.core.timeutil import utcnow
from movieclub.models.card import Rarity


class RarityWeights(BaseModel):
    """Percent chance of each pack tier; should sum to 100."""
    legendary: float = 1
    epic: float = 10
    rare: float = 25
    uncommon: float = 64


class Pack(Document):
    name: str
    image_url: str = ""
    price: int = 50
    cards_per_pack: int = 5
    allowed_rarities: list[Rarity] = Field(default_factory=list)  # empty = all
    allowed_card_types: list[str] = Field(default_factory=list)  # empty = all
    is_active: bool = True
    is_free: bool = False
    rarity_weights: RarityWeights | None = None
    holo_chance: float | None = None  # percent; None uses the global default
    allow_prismatic: bool = False
    prismatic_chance: float = 2
    allow_dark_matter: bool = False
    dark_matter_chance: float = 0.5
    sort_order: int = 0
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "packs"

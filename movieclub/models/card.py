from datetime import datetime
from enum import Enum

from beanie import Document, Indexed
from pydantic import Field

from movieclub.core.timeutil import utcnow


class Rarity(str, Enum):
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class Finish(str, Enum):
    NORMAL = "normal"
    HOLO = "holo"
    PRISMATIC = "prismatic"
    DARK_MATTER = "darkMatter"


class CharacterPortrayal(Document):
    """Template in the character pool that packs draw from."""
    character_id: Indexed(str, unique=True)
    actor_name: str
    character_name: str = ""
    movie_title: str = ""
    movie_tmdb_id: int | None = None
    profile_path: str = ""
    rarity: Rarity = Rarity.UNCOMMON
    card_type: str = "actor"
    popularity: float = 0.0


class Card(Document):
    user_id: Indexed(str)
    character_id: Indexed(str)
    rarity: Rarity
    finish: Finish = Finish.NORMAL
    actor_name: str = ""
    character_name: str = ""
    movie_title: str = ""
    movie_tmdb_id: int | None = None
    profile_path: str = ""
    card_type: str = "actor"
    acquired_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "cards"

    @property
    def is_foil(self) -> bool:
        return self.finish != Finish.NORMAL

    def to_public(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "character_id": self.character_id,
            "rarity": self.rarity.value,
            "finish": self.finish.value,
            "is_foil": self.is_foil,
            "actor_name": self.actor_name,
            "character_name": self.character_name,
            "movie_title": self.movie_title,
            "movie_tmdb_id": self.movie_tmdb_id,
            "profile_path": self.profile_path,
            "card_type": self.card_type,
            "acquired_at": self.acquired_at.isoformat(),
        }

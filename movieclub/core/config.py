from functools import lru_cache

import orjson
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOCAL_ORIGINS = ("http://localhost:3000", "http://localhost:5173")


def split_origins(raw: str | None) -> list[str]:
    """Comma-separated or JSON list; anything empty or unreadable means the local dev origins."""
    text = (raw or "").strip()
    if text.startswith("["):
        try:
            items = orjson.loads(text)
        except orjson.JSONDecodeError:
            items = []
    else:
        items = text.split(",")
    origins = [o.strip() for o in items if isinstance(o, str) and o.strip()]
    return origins or list(LOCAL_ORIGINS)


class Settings(BaseSettings):
    """Process configuration. Game tuning lives in the GameSettings document instead."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: str = "development"
    debug: bool = False
    secret_key: str = "change-me-in-production-min-32-chars"
    admin_password: str = ""

    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "movieclub"

    sentry_dsn: str | None = None
    cors_origins_raw: str = Field(default=",".join(LOCAL_ORIGINS), alias="CORS_ORIGINS")

    # Economy constants
    default_pack_price: int = 50
    default_cards_per_pack: int = 5
    default_holo_chance: float = 0.08  # fraction, packs store percent
    lottery_pool_cap: int = 600
    lottery_max_tickets_per_purchase: int = 10
    scratch_off_max_per_purchase: int = 5
    blackjack_session_ttl_seconds: int = 30 * 60

    @property
    def cors_origins(self) -> list[str]:
        return split_origins(self.cors_origins_raw)


@lru_cache
def get_settings() -> Settings:
    return Settings()

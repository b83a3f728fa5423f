import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from movieclub.core.config import get_settings
from movieclub.models.activity import ActivityEntry, QuestProgress
from movieclub.models.balance import Balance
from movieclub.models.bet_event import BetEvent
from movieclub.models.blackjack_session import BlackjackSession
from movieclub.models.card import Card, CharacterPortrayal
from movieclub.models.game_settings import GameSettings
from movieclub.models.ledger import LedgerEntry
from movieclub.models.listing import BuyOrder, Listing
from movieclub.models.lottery import LotteryDraw, LotteryTicket
from movieclub.models.pack import Pack
from movieclub.models.trade import TradeOffer

DOCUMENT_MODELS = [
    Balance,
    LedgerEntry,
    Card,
    CharacterPortrayal,
    Listing,
    BuyOrder,
    TradeOffer,
    BlackjackSession,
    LotteryTicket,
    LotteryDraw,
    BetEvent,
    Pack,
    GameSettings,
    ActivityEntry,
    QuestProgress,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db(database: AsyncIOMotorDatabase | None = None) -> None:
    """Bind every document model; pass ``database`` to use an existing (or mock) client."""
    if database is None:
        settings = get_settings()
        kwargs = {}
        if _use_tls(settings.mongodb_uri):
            kwargs["tlsCAFile"] = certifi.where()
            kwargs["tlsDisableOCSPEndpointCheck"] = True
        client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
        database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)

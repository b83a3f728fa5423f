from movieclub.models.activity import ActivityEntry, QuestProgress
from movieclub.models.balance import Balance, Currency
from movieclub.models.bet_event import BetEvent
from movieclub.models.blackjack_session import BlackjackSession
from movieclub.models.card import Card, CharacterPortrayal
from movieclub.models.game_settings import GameSettings
from movieclub.models.ledger import LedgerEntry
from movieclub.models.listing import BuyOrder, Listing
from movieclub.models.lottery import LotteryDraw, LotteryTicket
from movieclub.models.pack import Pack
from movieclub.models.trade import TradeOffer

__all__ = [
    "ActivityEntry",
    "QuestProgress",
    "Balance",
    "Currency",
    "BetEvent",
    "BlackjackSession",
    "Card",
    "CharacterPortrayal",
    "GameSettings",
    "LedgerEntry",
    "BuyOrder",
    "Listing",
    "LotteryDraw",
    "LotteryTicket",
    "Pack",
    "TradeOffer",
]

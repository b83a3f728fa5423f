"""Admin-tunable casino and lottery configuration, stored as one document."""

from beanie import Document, Indexed
from pydantic import BaseModel, Field

SLOT_SYMBOLS = ("7", "BAR", "cherry", "star", "bell")
SCRATCH_SYMBOLS = ("JACKPOT", "DIAMOND", "GOLD", "STAR", "CLOVER", "LUCKY")

DEFAULT_SLOTS_PAYTABLE = {"7": 43, "BAR": 21, "star": 13, "bell": 9, "cherry": 4}
DEFAULT_SCRATCH_PAYTABLE = {"JACKPOT": 50, "DIAMOND": 20, "GOLD": 10, "STAR": 5, "CLOVER": 3, "LUCKY": 1}
DEFAULT_SCRATCH_ODDS = {"JACKPOT": 200, "DIAMOND": 100, "GOLD": 50, "STAR": 25, "CLOVER": 15, "LUCKY": 10}


class SlotsSettings(BaseModel):
    min_bet: int = 5
    max_bet: int = 100
    valid_bets: list[int] = Field(default_factory=lambda: [5, 10, 25, 50, 100])
    paytable: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SLOTS_PAYTABLE))
    paytable_2oak: float = 0.25


class BlackjackSettings(BaseModel):
    min_bet: int = 2
    max_bet: int = 500
    blackjack_payout: float = 1.5  # 1.5 = 3:2


class RouletteSettings(BaseModel):
    min_bet: int = 5
    max_bet: int = 500
    bet_step: int = 5
    color_payout: float = 2
    straight_payout: float = 35


class ScratchOffSettings(BaseModel):
    cost: int = 10
    daily_limit: int = 20
    paytable: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SCRATCH_PAYTABLE))
    win_chance_denom: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_SCRATCH_ODDS))


class LotterySettings(BaseModel):
    ticket_cost: int = 25
    starting_pool: int = 0
    house_take_percent: float = 0


class GameSettingsData(BaseModel):
    slots: SlotsSettings = Field(default_factory=SlotsSettings)
    blackjack: BlackjackSettings = Field(default_factory=BlackjackSettings)
    roulette: RouletteSettings = Field(default_factory=RouletteSettings)
    scratch_off: ScratchOffSettings = Field(default_factory=ScratchOffSettings)
    lottery: LotterySettings = Field(default_factory=LotterySettings)


class GameSettings(Document):
    key: Indexed(str, unique=True) = "default"
    data: dict = Field(default_factory=dict)  # raw admin input; normalized on read

    class Settings:
        name = "game_settings"

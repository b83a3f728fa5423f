"""Load, normalize and save the admin-tunable game configuration."""

from typing import Any

from movieclub.core.logging import get_logger
from movieclub.models.game_settings import (
    SCRATCH_SYMBOLS,
    SLOT_SYMBOLS,
    BlackjackSettings,
    GameSettings,
    GameSettingsData,
    LotterySettings,
    RouletteSettings,
    ScratchOffSettings,
    SlotsSettings,
)

log = get_logger(__name__)

SETTINGS_KEY = "default"


def _num(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _int_at_least(v: Any, low: int, default: int) -> int:
    return int(v) if _num(v) and v >= low else default


def _float_between(v: Any, low: float, high: float, default: float) -> float:
    return float(v) if _num(v) and low <= v <= high else default


def _ordered(low: int, high: int) -> tuple[int, int]:
    return (high, low) if low > high else (low, high)


def _table(raw: Any, keys: tuple[str, ...], defaults: dict[str, float], low: float) -> dict[str, float]:
    raw = raw if isinstance(raw, dict) else {}
    out: dict[str, float] = {}
    for k in keys:
        v = raw.get(k)
        out[k] = v if _num(v) and v >= low else defaults[k]
    return out


def normalize_slots(raw: Any) -> SlotsSettings:
    raw = raw if isinstance(raw, dict) else {}
    d = SlotsSettings()
    min_bet, max_bet = _ordered(
        _int_at_least(raw.get("min_bet"), 1, d.min_bet),
        _int_at_least(raw.get("max_bet"), 1, d.max_bet),
    )
    valid = raw.get("valid_bets")
    if isinstance(valid, list):
        valid_bets = sorted({int(v) for v in valid if _num(v) and v >= 1 and int(v) == v})
    else:
        valid_bets = []
    return SlotsSettings(
        min_bet=min_bet,
        max_bet=max_bet,
        valid_bets=valid_bets or d.valid_bets,
        paytable=_table(raw.get("paytable"), SLOT_SYMBOLS, d.paytable, 0),
        paytable_2oak=float(raw["paytable_2oak"]) if _num(raw.get("paytable_2oak")) and raw["paytable_2oak"] >= 0 else d.paytable_2oak,
    )


def normalize_blackjack(raw: Any) -> BlackjackSettings:
    raw = raw if isinstance(raw, dict) else {}
    d = BlackjackSettings()

    def even(v: Any, default: int) -> int:
        return int(v) if _num(v) and v >= 2 and int(v) == v and int(v) % 2 == 0 else default

    min_bet, max_bet = _ordered(even(raw.get("min_bet"), d.min_bet), even(raw.get("max_bet"), d.max_bet))
    return BlackjackSettings(
        min_bet=min_bet,
        max_bet=max_bet,
        blackjack_payout=_float_between(raw.get("blackjack_payout"), 1, 3, d.blackjack_payout),
    )


def normalize_roulette(raw: Any) -> RouletteSettings:
    raw = raw if isinstance(raw, dict) else {}
    d = RouletteSettings()
    min_bet, max_bet = _ordered(
        _int_at_least(raw.get("min_bet"), 1, d.min_bet),
        _int_at_least(raw.get("max_bet"), 1, d.max_bet),
    )
    return RouletteSettings(
        min_bet=min_bet,
        max_bet=max_bet,
        bet_step=_int_at_least(raw.get("bet_step"), 1, d.bet_step),
        color_payout=_float_between(raw.get("color_payout"), 1, 10, d.color_payout),
        straight_payout=_float_between(raw.get("straight_payout"), 10, 50, d.straight_payout),
    )


def normalize_scratch_off(raw: Any) -> ScratchOffSettings:
    raw = raw if isinstance(raw, dict) else {}
    d = ScratchOffSettings()
    odds = _table(raw.get("win_chance_denom"), SCRATCH_SYMBOLS, d.win_chance_denom, 1)
    return ScratchOffSettings(
        cost=_int_at_least(raw.get("cost"), 1, d.cost),
        daily_limit=_int_at_least(raw.get("daily_limit"), 1, d.daily_limit),
        paytable=_table(raw.get("paytable"), SCRATCH_SYMBOLS, d.paytable, 0),
        win_chance_denom={k: int(v) for k, v in odds.items()},
    )


def normalize_lottery(raw: Any) -> LotterySettings:
    raw = raw if isinstance(raw, dict) else {}
    d = LotterySettings()
    return LotterySettings(
        ticket_cost=_int_at_least(raw.get("ticket_cost"), 1, d.ticket_cost),
        starting_pool=_int_at_least(raw.get("starting_pool"), 0, d.starting_pool),
        house_take_percent=_float_between(raw.get("house_take_percent"), 0, 100, d.house_take_percent),
    )


def normalize(raw: Any) -> GameSettingsData:
    """Coerce untrusted settings into a usable config; bad values fall back to defaults."""
    raw = raw if isinstance(raw, dict) else {}
    return GameSettingsData(
        slots=normalize_slots(raw.get("slots")),
        blackjack=normalize_blackjack(raw.get("blackjack")),
        roulette=normalize_roulette(raw.get("roulette")),
        scratch_off=normalize_scratch_off(raw.get("scratch_off")),
        lottery=normalize_lottery(raw.get("lottery")),
    )


async def get_game_settings() -> GameSettingsData:
    doc = await GameSettings.find_one(GameSettings.key == SETTINGS_KEY)
    return normalize(doc.data if doc else {})


async def save_game_settings(raw: dict[str, Any]) -> GameSettingsData:
    """Merge ``raw`` sections over the stored ones, persist the normalized result."""
    doc = await GameSettings.find_one(GameSettings.key == SETTINGS_KEY)
    current = doc.data if doc else {}
    merged = {**current}
    for section, values in (raw or {}).items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section] = {**merged[section], **values}
        else:
            merged[section] = values
    data = normalize(merged)
    if doc is None:
        doc = GameSettings(key=SETTINGS_KEY, data=data.model_dump())
        await doc.insert()
    else:
        doc.data = data.model_dump()
        await doc.save()
    log.info("game_settings_saved", sections=sorted((raw or {}).keys()))
    return data

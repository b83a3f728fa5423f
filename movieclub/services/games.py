"""Single-shot casino games: slots, roulette, scratch-off and two-sided bet events.

Each play is one locked unit: debit the stake, run the engine, credit any
winnings. The engine runs only after the debit succeeded, so a rejected play
leaves no trace.
"""

from typing import Any

from movieclub.core.activity import record_quest_progress
from movieclub.core.config import get_settings
from movieclub.core.exceptions import ConflictError, InvalidInputError, NotFoundError
from movieclub.core.locks import balance_key, entity_lock
from movieclub.core.logging import get_logger
from movieclub.core.timeutil import start_of_day, utcnow
from movieclub.db.lookup import get_by_id
from movieclub.models.balance import Currency
from movieclub.models.bet_event import BetEvent
from movieclub.models.ledger import LedgerEntry
from movieclub.services import casino
from movieclub.services import ledger
from movieclub.services.game_settings import get_game_settings
from movieclub.services.ledger import BetContext

log = get_logger(__name__)

COLOR_SELECTIONS = ("red", "black")
BET_SIDES = ("A", "B")


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _credits_key(user_id: str) -> str:
    return balance_key(user_id, Currency.CREDITS.value)


async def _pay(user_id: str, payout: casino.Payout, reason: str, context: BetContext) -> int:
    """Credit a win (a zero-value win writes nothing) and return the balance."""
    if payout.amount > 0:
        _, balance = await ledger.credit(user_id, payout.amount, reason, context)
        return balance
    return await ledger.get_balance(user_id)


# --- Slots ---


async def spin_slots(user_id: str, bet: Any, rng: casino.Uniform | None = None) -> dict[str, Any]:
    rng = rng or casino.default_rng
    cfg = (await get_game_settings()).slots
    if not _is_int(bet) or bet not in cfg.valid_bets or not cfg.min_bet <= bet <= cfg.max_bet:
        allowed = [b for b in cfg.valid_bets if cfg.min_bet <= b <= cfg.max_bet]
        raise InvalidInputError("Invalid bet", details={"valid_bets": allowed})

    async with entity_lock(_credits_key(user_id)):
        await ledger.debit(user_id, bet, "casino_slots", BetContext(bet=bet))
        symbols = casino.spin_slots(rng)
        payout = casino.slots_payout(symbols, bet, cfg.paytable, cfg.paytable_2oak)
        balance = await _pay(
            user_id, payout, "casino_slots_win", BetContext(bet=bet, symbols=symbols, payout=payout.amount)
        )
    log.info("slots_spun", user_id=user_id, bet=bet, symbols=symbols, payout=payout.amount)
    await record_quest_progress(user_id, "casino_play")
    return {
        "symbols": symbols,
        "payout": payout.amount,
        "win": payout.won,
        "new_balance": balance,
        "net_change": payout.amount - bet,
    }


# --- Roulette ---


def parse_selection(selection: Any) -> str | int:
    """``"red"``/``"black"`` or a straight number 0-36 (digit strings accepted)."""
    if isinstance(selection, str):
        s = selection.strip().lower()
        if s in COLOR_SELECTIONS:
            return s
        if s.isdigit():
            selection = int(s)
    if _is_int(selection) and 0 <= selection <= 36:
        return selection
    raise InvalidInputError("Selection must be red, black or a number 0-36")


async def spin_roulette(
    user_id: str,
    bet: Any,
    selection: Any,
    rng: casino.Uniform | None = None,
) -> dict[str, Any]:
    rng = rng or casino.default_rng
    cfg = (await get_game_settings()).roulette
    if not _is_int(bet) or not cfg.min_bet <= bet <= cfg.max_bet or bet % cfg.bet_step != 0:
        raise InvalidInputError(
            f"Bet must be between {cfg.min_bet} and {cfg.max_bet} in steps of {cfg.bet_step}"
        )
    pick = parse_selection(selection)

    async with entity_lock(_credits_key(user_id)):
        await ledger.debit(user_id, bet, "casino_roulette", BetContext(bet=bet, selection=pick))
        result = casino.spin_roulette(rng)
        payout = casino.roulette_payout(pick, result, bet, cfg.color_payout, cfg.straight_payout)
        balance = await _pay(
            user_id,
            payout,
            "casino_roulette_win",
            BetContext(bet=bet, selection=pick, result=result, payout=payout.amount),
        )
    log.info("roulette_spun", user_id=user_id, bet=bet, selection=pick, result=result, payout=payout.amount)
    await record_quest_progress(user_id, "casino_play")
    return {
        "result": result,
        "result_color": casino.roulette_color(result),
        "selection": pick,
        "payout": payout.amount,
        "win": payout.won,
        "new_balance": balance,
        "net_change": payout.amount - bet,
    }


# --- Scratch-off ---


async def scratch_offs_today(user_id: str) -> int:
    """Tickets bought since 00:00 UTC, counted from the purchase ledger entries."""
    entries = await LedgerEntry.find(
        LedgerEntry.user_id == user_id,
        LedgerEntry.reason == "scratch_off",
        LedgerEntry.created_at >= start_of_day(utcnow()),
    ).to_list()
    return sum(int(e.metadata.get("count", 1)) for e in entries)


async def buy_scratch_offs(user_id: str, count: Any = 1, rng: casino.Uniform | None = None) -> dict[str, Any]:
    rng = rng or casino.default_rng
    max_per_purchase = get_settings().scratch_off_max_per_purchase
    if not _is_int(count) or not 1 <= count <= max_per_purchase:
        raise InvalidInputError(f"Count must be between 1 and {max_per_purchase}")
    cfg = (await get_game_settings()).scratch_off

    async with entity_lock(f"scratch_off:{user_id}", _credits_key(user_id)):
        used = await scratch_offs_today(user_id)
        remaining = max(0, cfg.daily_limit - used)
        if count > remaining:
            raise ConflictError(
                "Daily scratch-off limit reached" if remaining == 0 else f"Only {remaining} tickets left today",
                details={"daily_limit": cfg.daily_limit, "remaining": remaining},
            )
        cost = cfg.cost * count
        await ledger.debit(user_id, cost, "scratch_off", BetContext(bet=cost, count=count))

        tickets = []
        total = 0
        for _ in range(count):
            panels = casino.scratch_off_panels(cfg.win_chance_denom, rng)
            payout = casino.scratch_off_payout(panels, cfg.cost, cfg.paytable)
            tickets.append({"panels": panels, "payout": payout.amount, "win": payout.won})
            total += payout.amount
        balance = await _pay(
            user_id,
            casino.Payout(amount=total, won=total > 0),
            "scratch_off_win",
            BetContext(bet=cost, count=count, payout=total),
        )
    log.info("scratch_off_bought", user_id=user_id, count=count, cost=cost, payout=total)
    await record_quest_progress(user_id, "casino_play", count)
    return {
        "tickets": tickets,
        "panels": tickets[0]["panels"] if count == 1 else None,
        "payout": total,
        "win": any(t["win"] for t in tickets),
        "total_cost": cost,
        "new_balance": balance,
        "remaining_today": remaining - count,
    }


# --- Bet events ---


def event_to_public(e: BetEvent) -> dict[str, Any]:
    return {
        "id": str(e.id),
        "title": e.title,
        "side_a": e.side_a,
        "side_b": e.side_b,
        "odds_a": e.odds_a,
        "odds_b": e.odds_b,
        "implied_probability_a": round(casino.implied_probability_a(e.odds_a, e.odds_b), 4),
        "min_bet": e.min_bet,
        "max_bet": e.max_bet,
        "is_active": e.is_active,
        "created_at": e.created_at.isoformat(),
    }


def _check_event_fields(data: dict[str, Any]) -> None:
    for key in ("odds_a", "odds_b"):
        if key in data and (not isinstance(data[key], (int, float)) or data[key] <= 1):
            raise InvalidInputError(f"{key} must be decimal odds greater than 1")
    for key in ("min_bet", "max_bet"):
        if key in data and (not _is_int(data[key]) or data[key] < 1):
            raise InvalidInputError(f"{key} must be a positive integer")
    for key in ("title", "side_a", "side_b"):
        if key in data and not str(data[key]).strip():
            raise InvalidInputError(f"{key} is required")


async def list_events(active_only: bool = True) -> list[BetEvent]:
    query = BetEvent.find(BetEvent.is_active == True) if active_only else BetEvent.find_all()  # noqa: E712
    return await query.sort(-BetEvent.created_at).to_list()


async def create_event(data: dict[str, Any]) -> BetEvent:
    _check_event_fields(data)
    event = BetEvent(**data)
    if event.min_bet > event.max_bet:
        event.min_bet, event.max_bet = event.max_bet, event.min_bet
    await event.insert()
    log.info("bet_event_created", event_id=str(event.id), title=event.title)
    return event


async def update_event(event_id: str, data: dict[str, Any]) -> BetEvent:
    _check_event_fields(data)
    event = await get_by_id(BetEvent, event_id)
    if event is None:
        raise NotFoundError("Bet not found")
    for key, value in data.items():
        setattr(event, key, value)
    if event.min_bet > event.max_bet:
        event.min_bet, event.max_bet = event.max_bet, event.min_bet
    await event.save()
    return event


async def place_bet(
    user_id: str,
    event_id: str,
    side: Any,
    amount: Any,
    rng: casino.Uniform | None = None,
) -> dict[str, Any]:
    rng = rng or casino.default_rng
    side = side.upper() if isinstance(side, str) else side
    if side not in BET_SIDES:
        raise InvalidInputError("Side must be A or B")
    if not _is_int(amount) or amount < 1:
        raise InvalidInputError("Amount must be a positive integer")
    event = await get_by_id(BetEvent, event_id)
    if event is None:
        raise NotFoundError("Bet not found")
    if not event.is_active:
        raise ConflictError("This bet is closed")
    if not event.min_bet <= amount <= event.max_bet:
        raise InvalidInputError(f"Bet must be between {event.min_bet} and {event.max_bet}")

    odds = event.odds_a if side == "A" else event.odds_b
    async with entity_lock(_credits_key(user_id)):
        await ledger.debit(
            user_id, amount, "casino_bets", BetContext(bet=amount, event_id=event_id, side=side)
        )
        winner = casino.resolve_two_sided(event.odds_a, event.odds_b, rng)
        won = winner == side
        payout = casino.Payout(amount=int(amount * odds), won=True) if won else casino.NO_WIN
        balance = await _pay(
            user_id,
            payout,
            "casino_bets_win",
            BetContext(bet=amount, event_id=event_id, side=side, result=winner, payout=payout.amount),
        )
    log.info("bet_placed", user_id=user_id, event_id=event_id, side=side, winner=winner, payout=payout.amount)
    await record_quest_progress(user_id, "casino_play")
    return {
        "event_id": event_id,
        "side": side,
        "winner": winner,
        "winner_name": event.side_a if winner == "A" else event.side_b,
        "payout": payout.amount,
        "win": payout.won,
        "new_balance": balance,
        "net_change": payout.amount - amount,
    }

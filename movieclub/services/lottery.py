"""Weekly lottery: ticket sales per draw period and lazy, idempotent draws."""

from datetime import datetime, timedelta
from typing import Any

from pymongo.errors import DuplicateKeyError

from movieclub.core.activity import log_event
from movieclub.core.config import get_settings
from movieclub.core.exceptions import ConflictError, InvalidInputError
from movieclub.core.locks import entity_lock
from movieclub.core.logging import get_logger
from movieclub.core.timeutil import draw_id_for, next_draw_at, utcnow
from movieclub.models.lottery import LotteryDraw, LotteryTicket
from movieclub.services import casino
from movieclub.services import ledger
from movieclub.services.games import scratch_offs_today
from movieclub.services.game_settings import get_game_settings
from movieclub.services.ledger import LotteryContext

log = get_logger(__name__)


def current_draw_id(now: datetime | None = None) -> str:
    return draw_id_for(next_draw_at(now))


def previous_draw_id(now: datetime | None = None) -> str:
    return draw_id_for(next_draw_at(now) - timedelta(days=7))


def _period_key(draw_id: str) -> str:
    return f"lottery:{draw_id}"


def gross_pool(ticket_count: int, ticket_cost: int, starting_pool: int) -> int:
    return min(ticket_count * ticket_cost + starting_pool, get_settings().lottery_pool_cap)


def prize_after_take(pool: int, house_take_percent: float) -> int:
    return pool - int(pool * house_take_percent / 100)


async def _tickets(draw_id: str) -> list[LotteryTicket]:
    # stable order so a given random draw always maps to the same ticket
    rows = await LotteryTicket.find(LotteryTicket.draw_id == draw_id).to_list()
    return sorted(rows, key=lambda t: (t.purchased_at, str(t.id)))


def draw_to_public(d: LotteryDraw | None) -> dict[str, Any] | None:
    if d is None:
        return None
    return {
        "draw_id": d.draw_id,
        "winner_user_id": d.winner_user_id,
        "winner_user_name": d.winner_user_name,
        "prize_pool": d.prize_pool,
        "ticket_count": d.ticket_count,
        "drawn_at": d.drawn_at.isoformat(),
    }


async def run_draw(draw_id: str, rng: casino.Uniform | None = None) -> LotteryDraw:
    """
    Resolve ``draw_id`` once. The LotteryDraw row is written before the prize is
    credited; its unique index makes any later call return the stored result.
    """
    rng = rng or casino.default_rng
    async with entity_lock(_period_key(draw_id)):
        existing = await LotteryDraw.find_one(LotteryDraw.draw_id == draw_id)
        if existing is not None:
            return existing

        cfg = (await get_game_settings()).lottery
        tickets = await _tickets(draw_id)
        winner = casino.draw_lottery_winner(tickets, rng)
        pool = gross_pool(len(tickets), cfg.ticket_cost, cfg.starting_pool) if tickets else 0
        prize = prize_after_take(pool, cfg.house_take_percent)
        draw = LotteryDraw(
            draw_id=draw_id,
            winner_user_id=winner.user_id if winner else None,
            winner_user_name=winner.user_name if winner else None,
            prize_pool=prize,
            ticket_count=len(tickets),
        )
        try:
            await draw.insert()
        except DuplicateKeyError:
            stored = await LotteryDraw.find_one(LotteryDraw.draw_id == draw_id)
            if stored is None:
                raise
            return stored

        if winner is not None and prize > 0:
            await ledger.credit(
                winner.user_id, prize, "lottery_win",
                LotteryContext(draw_id=draw_id, prize_pool=prize),
            )
    log.info(
        "lottery_drawn",
        draw_id=draw_id,
        winner_user_id=draw.winner_user_id,
        prize_pool=prize,
        ticket_count=draw.ticket_count,
    )
    if winner is not None:
        await log_event(
            winner.user_id, "lottery_win", "lottery", draw_id,
            {"prize_pool": prize, "user_name": winner.user_name},
        )
    return draw


async def resolve_past_draws(now: datetime | None = None, rng: casino.Uniform | None = None) -> None:
    """Draw every elapsed period that sold tickets, plus the one that just ended."""
    current = current_draw_id(now)
    pending = {previous_draw_id(now)}
    past = await LotteryTicket.find(LotteryTicket.draw_id < current).to_list()
    pending.update(t.draw_id for t in past)
    done = await LotteryDraw.find({"draw_id": {"$in": sorted(pending)}}).to_list()
    for draw_id in sorted(pending - {d.draw_id for d in done}):
        await run_draw(draw_id, rng)


async def latest_draw() -> LotteryDraw | None:
    rows = await LotteryDraw.find_all().sort(-LotteryDraw.draw_id).limit(1).to_list()
    return rows[0] if rows else None


async def get_state(user_id: str | None = None, rng: casino.Uniform | None = None) -> dict[str, Any]:
    await resolve_past_draws(rng=rng)
    settings = await get_game_settings()
    cfg = settings.lottery
    draw_id = current_draw_id()
    tickets = await _tickets(draw_id)
    pool = gross_pool(len(tickets), cfg.ticket_cost, cfg.starting_pool)
    out: dict[str, Any] = {
        "draw_id": draw_id,
        "next_draw_at": next_draw_at().isoformat(),
        "ticket_cost": cfg.ticket_cost,
        "ticket_count": len(tickets),
        "entrants": len({t.user_id for t in tickets}),
        "prize_pool": pool,
        "pool_cap": get_settings().lottery_pool_cap,
        "sold_out": pool >= get_settings().lottery_pool_cap,
        "latest_draw": draw_to_public(await latest_draw()),
    }
    if user_id:
        used = await scratch_offs_today(user_id)
        out["my_tickets"] = sum(1 for t in tickets if t.user_id == user_id)
        out["scratch_off_remaining"] = max(0, settings.scratch_off.daily_limit - used)
        out["scratch_off_sold_out"] = used >= settings.scratch_off.daily_limit
    return out


async def buy_tickets(user_id: str, user_name: str, count: Any) -> dict[str, Any]:
    max_count = get_settings().lottery_max_tickets_per_purchase
    if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= max_count:
        raise InvalidInputError(f"Count must be between 1 and {max_count}")
    await resolve_past_draws()
    cfg = (await get_game_settings()).lottery
    draw_id = current_draw_id()

    # period before balance, the same order run_draw takes them when it pays a winner
    async with entity_lock(_period_key(draw_id)):
        closed = await LotteryDraw.find_one(LotteryDraw.draw_id == draw_id)
        if closed is not None or current_draw_id() != draw_id:
            raise ConflictError("This draw has closed. Try again for the next one.")
        tickets = await _tickets(draw_id)
        if gross_pool(len(tickets), cfg.ticket_cost, cfg.starting_pool) >= get_settings().lottery_pool_cap:
            raise ConflictError("Lottery sold out")
        total_cost = cfg.ticket_cost * count
        _, balance = await ledger.debit(
            user_id, total_cost, "lottery_ticket", LotteryContext(draw_id=draw_id, count=count)
        )
        now = utcnow()
        await LotteryTicket.insert_many(
            [LotteryTicket(draw_id=draw_id, user_id=user_id, user_name=user_name, purchased_at=now) for _ in range(count)]
        )
        ticket_count = len(tickets) + count
        mine = sum(1 for t in tickets if t.user_id == user_id) + count
    log.info("lottery_tickets_bought", user_id=user_id, draw_id=draw_id, count=count, cost=total_cost)
    return {
        "purchased": count,
        "total_cost": total_cost,
        "new_balance": balance,
        "my_tickets": mine,
        "prize_pool": gross_pool(ticket_count, cfg.ticket_cost, cfg.starting_pool),
        "draw_id": draw_id,
        "next_draw_at": next_draw_at().isoformat(),
    }


async def reset_current() -> int:
    """Drop every ticket of the open period. Stakes are not refunded."""
    draw_id = current_draw_id()
    async with entity_lock(_period_key(draw_id)):
        result = await LotteryTicket.find(LotteryTicket.draw_id == draw_id).delete()
    deleted = result.deleted_count if result is not None else 0
    log.info("lottery_reset", draw_id=draw_id, deleted=deleted)
    return deleted

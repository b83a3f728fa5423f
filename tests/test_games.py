import pytest

from movieclub.core.exceptions import (
    ConflictError,
    InsufficientFundsError,
    InvalidInputError,
    NotFoundError,
)
from movieclub.models.ledger import LedgerEntry
from movieclub.services import games as games_service
from movieclub.services import ledger
from movieclub.services.game_settings import save_game_settings

pytestmark = pytest.mark.usefixtures("db")


def roulette_draw(n: int) -> float:
    """Uniform value that lands on wheel number ``n``."""
    return (n + 0.5) / 37


# --- slots ---


async def test_slots_jackpot(fund, scripted):
    await fund("alice", 100)
    out = await games_service.spin_slots("alice", 10, rng=scripted([0.0, 0.0, 0.0]))
    assert out["symbols"] == ["7", "7", "7"]
    assert out["payout"] == 430
    assert out["win"] is True
    assert out["new_balance"] == 520
    reasons = [e.reason for e in await ledger.list_entries("alice")]
    assert reasons == ["casino_slots_win", "casino_slots", "admin_grant"]


async def test_slots_two_of_a_kind(fund, scripted):
    await fund("alice", 100)
    out = await games_service.spin_slots("alice", 5, rng=scripted([0.0, 0.0, 0.5]))
    assert out["symbols"] == ["7", "7", "cherry"]
    assert out["payout"] == 1
    assert out["new_balance"] == 96


async def test_slots_loss_writes_no_win_entry(fund, scripted):
    await fund("alice", 100)
    out = await games_service.spin_slots("alice", 25, rng=scripted([0.0, 0.2, 0.4]))
    assert out["payout"] == 0
    assert out["win"] is False
    assert out["new_balance"] == 75
    assert await LedgerEntry.find(LedgerEntry.reason == "casino_slots_win").count() == 0


async def test_slots_rejects_bet_outside_allowed_list(fund):
    await fund("alice", 100)
    with pytest.raises(InvalidInputError) as exc:
        await games_service.spin_slots("alice", 7)
    assert exc.value.details["valid_bets"] == [5, 10, 25, 50, 100]
    assert await ledger.get_balance("alice") == 100


async def test_slots_requires_funds():
    with pytest.raises(InsufficientFundsError):
        await games_service.spin_slots("alice", 5)


# --- roulette ---


async def test_roulette_red_wins(fund):
    await fund("alice", 100)
    out = await games_service.spin_roulette("alice", 10, "red", rng=lambda: roulette_draw(7))
    assert out["result"] == 7
    assert out["result_color"] == "red"
    assert out["payout"] == 20
    assert out["new_balance"] == 110


async def test_roulette_zero_loses_color(fund):
    await fund("alice", 100)
    out = await games_service.spin_roulette("alice", 10, "red", rng=lambda: 0.0)
    assert out["result"] == 0
    assert out["result_color"] == "green"
    assert out["payout"] == 0
    assert out["win"] is False
    assert out["new_balance"] == 90


async def test_roulette_straight_from_string(fund):
    await fund("alice", 100)
    out = await games_service.spin_roulette("alice", 10, "14", rng=lambda: roulette_draw(14))
    assert out["selection"] == 14
    assert out["payout"] == 350


@pytest.mark.parametrize(("bet", "selection"), [(7, "red"), (1000, "red"), (10, "purple"), (10, 37), (10, -1)])
async def test_roulette_invalid_input(fund, bet, selection):
    await fund("alice", 1000)
    with pytest.raises(InvalidInputError):
        await games_service.spin_roulette("alice", bet, selection)
    assert await ledger.get_balance("alice") == 1000


# --- scratch-off ---


async def test_scratch_off_losing_tickets(fund, cycling):
    await fund("alice", 100)
    out = await games_service.buy_scratch_offs("alice", 2, rng=cycling([0.99, 0.5]))
    assert len(out["tickets"]) == 2
    assert out["panels"] is None
    assert out["payout"] == 0
    assert out["total_cost"] == 20
    assert out["new_balance"] == 80
    assert out["remaining_today"] == 18
    for ticket in out["tickets"]:
        assert len(ticket["panels"]) == 12
        assert max(ticket["panels"].count(s) for s in ticket["panels"]) == 2


async def test_scratch_off_jackpot(fund, cycling):
    await fund("alice", 100)
    out = await games_service.buy_scratch_offs("alice", 1, rng=cycling([0.001, 0.5]))
    assert out["panels"].count("JACKPOT") >= 3
    assert out["payout"] == 500
    assert out["win"] is True
    assert out["new_balance"] == 590


async def test_scratch_off_daily_limit(fund, cycling):
    await save_game_settings({"scratch_off": {"daily_limit": 3}})
    await fund("alice", 100)
    rng = cycling([0.99, 0.5])
    await games_service.buy_scratch_offs("alice", 2, rng=rng)
    with pytest.raises(ConflictError) as exc:
        await games_service.buy_scratch_offs("alice", 2, rng=rng)
    assert exc.value.details["remaining"] == 1
    await games_service.buy_scratch_offs("alice", 1, rng=rng)
    with pytest.raises(ConflictError):
        await games_service.buy_scratch_offs("alice", 1, rng=rng)
    assert await games_service.scratch_offs_today("alice") == 3
    assert await ledger.get_balance("alice") == 70


@pytest.mark.parametrize("count", [0, 6, 2.5])
async def test_scratch_off_count_bounds(fund, count):
    await fund("alice", 100)
    with pytest.raises(InvalidInputError):
        await games_service.buy_scratch_offs("alice", count)


# --- bet events ---


async def _event(**overrides):
    data = {"title": "Best Picture", "side_a": "Dune", "side_b": "Barbie", "odds_a": 2.0, "odds_b": 2.0}
    data.update(overrides)
    return await games_service.create_event(data)


async def test_bet_event_win(fund):
    await fund("alice", 100)
    event = await _event()
    out = await games_service.place_bet("alice", str(event.id), "a", 10, rng=lambda: 0.1)
    assert out["winner"] == "A"
    assert out["winner_name"] == "Dune"
    assert out["payout"] == 20
    assert out["new_balance"] == 110


async def test_bet_event_loss(fund):
    await fund("alice", 100)
    event = await _event(odds_b=3.5)
    out = await games_service.place_bet("alice", str(event.id), "B", 10, rng=lambda: 0.1)
    assert out["winner"] == "A"
    assert out["payout"] == 0
    assert out["new_balance"] == 90


async def test_bet_event_payout_floors(fund):
    await fund("alice", 100)
    event = await _event(odds_b=2.55)
    out = await games_service.place_bet("alice", str(event.id), "B", 3, rng=lambda: 0.99)
    assert out["payout"] == 7


async def test_bet_event_validation(fund):
    await fund("alice", 1000)
    event = await _event(max_bet=50)
    with pytest.raises(InvalidInputError):
        await games_service.place_bet("alice", str(event.id), "C", 10)
    with pytest.raises(InvalidInputError):
        await games_service.place_bet("alice", str(event.id), "A", 51)
    with pytest.raises(NotFoundError):
        await games_service.place_bet("alice", "missing", "A", 10)
    await games_service.update_event(str(event.id), {"is_active": False})
    with pytest.raises(ConflictError):
        await games_service.place_bet("alice", str(event.id), "A", 10)
    assert await ledger.get_balance("alice") == 1000


async def test_bet_event_create_validation():
    with pytest.raises(InvalidInputError):
        await _event(odds_a=1.0)
    event = await _event(min_bet=100, max_bet=10)
    assert (event.min_bet, event.max_bet) == (10, 100)
    assert [e.title for e in await games_service.list_events()] == ["Best Picture"]

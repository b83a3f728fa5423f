import pytest

from movieclub.core.exceptions import (
    ConflictError,
    InsufficientFundsError,
    InvalidInputError,
    NotFoundError,
    NotOwnedError,
)
from movieclub.models.card import Card, Rarity
from movieclub.models.trade import TradeStatus
from movieclub.services import ledger
from movieclub.services import marketplace as market
from movieclub.services import trades as trade_service

pytestmark = pytest.mark.usefixtures("db")


async def make_card(owner: str, character_id: str) -> str:
    card = Card(user_id=owner, character_id=character_id, rarity=Rarity.UNCOMMON)
    await card.insert()
    return str(card.id)


async def owner_of(card_id: str) -> str:
    return (await Card.get(card_id)).user_id


async def test_accept_swaps_cards_and_credits(fund):
    a = await make_card("alice", "actor-1-1")
    b = await make_card("bob", "actor-2-2")
    await fund("alice", 50)
    trade = await trade_service.create_trade("alice", "bob", [a], [b], offered_credits=10)

    done = await trade_service.accept_trade(str(trade.id), "bob")
    assert done.status == TradeStatus.ACCEPTED
    assert done.resolved_at is not None
    assert await owner_of(a) == "bob"
    assert await owner_of(b) == "alice"
    assert await ledger.get_balance("alice") == 40
    assert await ledger.get_balance("bob") == 10
    for user in ("alice", "bob"):
        assert (await ledger.reconcile(user))["consistent"]


async def test_deny_leaves_everything_in_place():
    a = await make_card("alice", "actor-1-1")
    b = await make_card("bob", "actor-2-2")
    trade = await trade_service.create_trade("alice", "bob", [a], [b])
    denied = await trade_service.deny_trade(str(trade.id), "bob")
    assert denied.status == TradeStatus.DENIED
    assert await owner_of(a) == "alice"
    assert await owner_of(b) == "bob"
    with pytest.raises(ConflictError):
        await trade_service.accept_trade(str(trade.id), "bob")


async def test_only_the_right_party_may_act():
    a = await make_card("alice", "actor-1-1")
    trade = await trade_service.create_trade("alice", "bob", [a], [], requested_credits=5)
    trade_id = str(trade.id)
    with pytest.raises(NotOwnedError):
        await trade_service.accept_trade(trade_id, "alice")
    with pytest.raises(NotOwnedError):
        await trade_service.deny_trade(trade_id, "alice")
    with pytest.raises(NotOwnedError):
        await trade_service.cancel_trade(trade_id, "bob")
    cancelled = await trade_service.cancel_trade(trade_id, "alice")
    assert cancelled.status == TradeStatus.DENIED


async def test_card_that_changed_hands_aborts():
    a = await make_card("alice", "actor-1-1")
    b = await make_card("bob", "actor-2-2")
    trade = await trade_service.create_trade("alice", "bob", [a], [b])
    card = await Card.get(a)
    card.user_id = "carol"
    await card.save()

    with pytest.raises(ConflictError):
        await trade_service.accept_trade(str(trade.id), "bob")
    assert await owner_of(b) == "bob"
    assert (await trade_service.list_trades("bob"))[0].status == TradeStatus.PENDING


async def test_listed_card_aborts():
    a = await make_card("alice", "actor-1-1")
    b = await make_card("bob", "actor-2-2")
    trade = await trade_service.create_trade("alice", "bob", [a], [b])
    await market.list_card("alice", a, 10)
    with pytest.raises(ConflictError):
        await trade_service.accept_trade(str(trade.id), "bob")
    assert await owner_of(a) == "alice"
    assert await owner_of(b) == "bob"


async def test_deleted_card_is_skipped():
    a = await make_card("alice", "actor-1-1")
    b = await make_card("bob", "actor-2-2")
    trade = await trade_service.create_trade("alice", "bob", [a], [b])
    await (await Card.get(a)).delete()

    done = await trade_service.accept_trade(str(trade.id), "bob")
    assert done.status == TradeStatus.ACCEPTED
    assert await owner_of(b) == "alice"


async def test_nothing_left_to_exchange():
    a = await make_card("alice", "actor-1-1")
    b = await make_card("bob", "actor-2-2")
    trade = await trade_service.create_trade("alice", "bob", [a], [b])
    await (await Card.get(a)).delete()
    await (await Card.get(b)).delete()
    with pytest.raises(ConflictError):
        await trade_service.accept_trade(str(trade.id), "bob")


async def test_accept_rechecks_credits(fund):
    b = await make_card("bob", "actor-2-2")
    await fund("alice", 20)
    trade = await trade_service.create_trade("alice", "bob", [], [b], offered_credits=20)
    await ledger.debit("alice", 5, "admin_deduct")

    with pytest.raises(InsufficientFundsError):
        await trade_service.accept_trade(str(trade.id), "bob")
    assert await ledger.get_balance("alice") == 15
    assert await ledger.get_balance("bob") == 0
    assert await owner_of(b) == "bob"

    a = await make_card("alice", "actor-1-1")
    requesting = await trade_service.create_trade("alice", "bob", [a], [], requested_credits=5)
    with pytest.raises(InsufficientFundsError):
        await trade_service.accept_trade(str(requesting.id), "bob")
    assert await owner_of(a) == "alice"


async def test_credits_for_credits(fund):
    await fund("alice", 30)
    await fund("bob", 30)
    trade = await trade_service.create_trade("alice", "bob", [], [], offered_credits=20, requested_credits=5)
    await trade_service.accept_trade(str(trade.id), "bob")
    assert await ledger.get_balance("alice") == 15
    assert await ledger.get_balance("bob") == 45


async def test_create_validation(fund):
    a = await make_card("alice", "actor-1-1")
    b = await make_card("bob", "actor-2-2")
    with pytest.raises(InvalidInputError):
        await trade_service.create_trade("alice", "alice", [a], [b])
    with pytest.raises(InvalidInputError):
        await trade_service.create_trade("alice", "bob", [], [])
    with pytest.raises(InvalidInputError):
        await trade_service.create_trade("alice", "bob", [a], [b], offered_credits=-1)
    with pytest.raises(NotOwnedError):
        await trade_service.create_trade("bob", "carol", [a], [b])
    with pytest.raises(NotOwnedError):
        await trade_service.create_trade("carol", "bob", [b], [a])
    with pytest.raises(NotFoundError):
        await trade_service.create_trade("alice", "bob", ["0123456789ab0123456789ab"], [b])
    with pytest.raises(InsufficientFundsError):
        await trade_service.create_trade("alice", "bob", [a], [b], offered_credits=5)


@pytest.mark.parametrize(
    ("offer_card", "request_card", "offered_credits", "requested_credits"),
    [
        (True, False, 0, 0),
        (False, True, 0, 0),
        (False, False, 10, 0),
        (False, False, 0, 10),
    ],
)
async def test_each_side_must_contribute(fund, offer_card, request_card, offered_credits, requested_credits):
    a = await make_card("alice", "actor-1-1")
    b = await make_card("bob", "actor-2-2")
    await fund("alice", 10)
    with pytest.raises(InvalidInputError):
        await trade_service.create_trade(
            "alice",
            "bob",
            [a] if offer_card else [],
            [b] if request_card else [],
            offered_credits=offered_credits,
            requested_credits=requested_credits,
        )
    assert await trade_service.list_trades("alice") == []
    assert await owner_of(a) == "alice"


async def test_duplicate_card_ids_collapse():
    a = await make_card("alice", "actor-1-1")
    b = await make_card("bob", "actor-2-2")
    trade = await trade_service.create_trade("alice", "bob", [a, a], [b, b])
    assert trade.offered_card_ids == [a]
    assert trade.requested_card_ids == [b]


async def test_list_trades_by_status():
    a = await make_card("alice", "actor-1-1")
    b = await make_card("alice", "actor-2-2")
    first = await trade_service.create_trade("alice", "bob", [a], [], requested_credits=1)
    await trade_service.create_trade("alice", "carol", [b], [], requested_credits=1)
    await trade_service.deny_trade(str(first.id), "bob")

    assert len(await trade_service.list_trades("alice")) == 2
    pending = await trade_service.list_trades("alice", TradeStatus.PENDING)
    assert [t.counterparty_user_id for t in pending] == ["carol"]
    assert len(await trade_service.list_trades("bob", TradeStatus.DENIED)) == 1
    assert await trade_service.list_trades("dave") == []

import asyncio

import pytest

from movieclub.core import locks
from movieclub.core.activity import get_quest_progress
from movieclub.core.exceptions import (
    ConflictError,
    InsufficientFundsError,
    InvalidInputError,
    NotFoundError,
    NotOwnedError,
)
from movieclub.models.activity import QuestProgress
from movieclub.models.card import Card, CharacterPortrayal, Rarity
from movieclub.models.ledger import LedgerEntry
from movieclub.models.listing import BuyOrder, Listing
from movieclub.services import ledger
from movieclub.services import marketplace as market

pytestmark = pytest.mark.usefixtures("db")


async def make_card(owner: str, character_id: str = "actor-1-100", rarity: Rarity = Rarity.RARE) -> Card:
    card = Card(user_id=owner, character_id=character_id, rarity=rarity, actor_name="Someone")
    await card.insert()
    return card


async def owner_of(card: Card) -> str:
    return (await Card.get(card.id)).user_id


# --- listings ---


async def test_buy_listing_moves_card_and_credits(fund):
    card = await make_card("alice")
    listing = await market.list_card("alice", str(card.id), 30)
    await fund("bob", 100)

    out = await market.buy_listing("bob", str(listing.id))
    assert out["card"]["user_id"] == "bob"
    assert out["price"] == 30
    assert out["new_balance"] == 70
    assert await owner_of(card) == "bob"
    assert await ledger.get_balance("alice") == 30
    assert await Listing.find_all().count() == 0
    sale = await LedgerEntry.find_one(LedgerEntry.reason == "marketplace_sale")
    assert sale.metadata["counterparty_user_id"] == "bob"
    for user in ("alice", "bob"):
        assert (await ledger.reconcile(user))["consistent"]


async def test_concurrent_buys_exactly_one_wins(fund):
    card = await make_card("alice")
    listing = await market.list_card("alice", str(card.id), 30)
    await fund("bob", 100)
    await fund("carol", 100)

    results = await asyncio.gather(
        market.buy_listing("bob", str(listing.id)),
        market.buy_listing("carol", str(listing.id)),
        return_exceptions=True,
    )
    wins = [r for r in results if isinstance(r, dict)]
    losses = [r for r in results if isinstance(r, Exception)]
    assert len(wins) == 1
    assert len(losses) == 1
    assert isinstance(losses[0], (NotFoundError, ConflictError))

    winner = wins[0]["card"]["user_id"]
    loser = "carol" if winner == "bob" else "bob"
    assert await owner_of(card) == winner
    assert await ledger.get_balance(winner) == 70
    assert await ledger.get_balance(loser) == 100
    assert await ledger.get_balance("alice") == 30


async def test_cannot_buy_own_listing(fund):
    card = await make_card("alice")
    listing = await market.list_card("alice", str(card.id), 30)
    await fund("alice", 100)
    with pytest.raises(ConflictError):
        await market.buy_listing("alice", str(listing.id))


async def test_buy_without_funds_changes_nothing(fund):
    card = await make_card("alice")
    listing = await market.list_card("alice", str(card.id), 30)
    await fund("bob", 10)
    with pytest.raises(InsufficientFundsError):
        await market.buy_listing("bob", str(listing.id))
    assert await owner_of(card) == "alice"
    assert await Listing.find_all().count() == 1
    assert await ledger.get_balance("bob") == 10


async def test_stale_listing_is_rejected(fund):
    card = await make_card("alice")
    listing = await market.list_card("alice", str(card.id), 30)
    card.user_id = "dave"
    await card.save()
    await fund("bob", 100)

    with pytest.raises(ConflictError) as exc:
        await market.buy_listing("bob", str(listing.id))
    assert exc.value.message == "Card was sold"
    assert await ledger.get_balance("bob") == 100
    assert await owner_of(card) == "dave"


async def test_deleted_card_listing(fund):
    card = await make_card("alice")
    listing = await market.list_card("alice", str(card.id), 30)
    await card.delete()
    await fund("bob", 100)
    with pytest.raises(NotFoundError) as exc:
        await market.buy_listing("bob", str(listing.id))
    assert exc.value.message == "Card no longer exists"


async def test_missing_listing():
    with pytest.raises(NotFoundError):
        await market.buy_listing("bob", "not-an-id")


async def test_list_card_rules():
    card = await make_card("alice")
    with pytest.raises(InvalidInputError):
        await market.list_card("alice", str(card.id), 0)
    with pytest.raises(NotOwnedError):
        await market.list_card("bob", str(card.id), 10)
    await market.list_card("alice", str(card.id), 10)
    with pytest.raises(ConflictError):
        await market.list_card("alice", str(card.id), 20)


async def test_delist_seller_only():
    card = await make_card("alice")
    listing = await market.list_card("alice", str(card.id), 10)
    with pytest.raises(NotOwnedError):
        await market.delist_card("bob", str(listing.id))
    await market.delist_card("alice", str(listing.id))
    assert await Listing.find_all().count() == 0


async def test_browse_listings_filters_by_character():
    a = await make_card("alice", "actor-1-100")
    b = await make_card("alice", "actor-2-100")
    await market.list_card("alice", str(a.id), 10)
    await market.list_card("alice", str(b.id), 20)
    rows = await market.browse_listings(character_id="actor-2-100")
    assert [r["asking_price"] for r in rows] == [20]
    assert rows[0]["card"]["character_id"] == "actor-2-100"
    assert len(await market.browse_listings(seller_user_id="alice")) == 2


async def test_browse_by_character_pages_over_matches_only():
    for i in range(3):
        other = await make_card("alice", "actor-1-100")
        await market.list_card("alice", str(other.id), 10 + i)
        wanted = await make_card("alice", "actor-2-100")
        await market.list_card("alice", str(wanted.id), 20 + i)

    first = await market.browse_listings(character_id="actor-2-100", limit=2)
    rest = await market.browse_listings(character_id="actor-2-100", limit=2, offset=2)
    assert len(first) == 2
    assert len(rest) == 1
    assert sorted(r["asking_price"] for r in first + rest) == [20, 21, 22]
    assert await market.browse_listings(character_id="actor-9-100") == []


async def test_sales_count_toward_quests(fund):
    await fund("bob", 100)
    for i in range(2):
        card = await make_card("alice", f"actor-{i}-100")
        listing = await market.list_card("alice", str(card.id), 10)
        await market.buy_listing("bob", str(listing.id))

    assert await get_quest_progress("alice") == {"marketplace_sale": 2}
    assert await get_quest_progress("bob") == {"marketplace_buy": 2}
    assert await QuestProgress.count() == 2


async def test_lock_registry_does_not_grow():
    for i in range(10):
        card = await make_card("alice", f"actor-{i}-100")
        await market.list_card("alice", str(card.id), 10)
    assert locks._locks == {}


# --- buy orders ---


@pytest.fixture
async def character():
    entry = CharacterPortrayal(character_id="actor-1-100", actor_name="Someone", profile_path="/p.jpg")
    await entry.insert()
    return entry


async def test_fulfill_buy_order(fund, character):
    await fund("bob", 100)
    order = await market.create_buy_order("bob", "actor-1-100", 40)
    card = await make_card("alice")

    out = await market.fulfill_buy_order("alice", str(order.id), str(card.id))
    assert out["new_balance"] == 40
    assert await owner_of(card) == "bob"
    assert await ledger.get_balance("bob") == 60
    assert await BuyOrder.find_all().count() == 0


async def test_fulfill_rechecks_requester_funds(fund, character):
    await fund("bob", 50)
    order = await market.create_buy_order("bob", "actor-1-100", 40)
    await ledger.debit("bob", 20, "admin_deduct")
    card = await make_card("alice")

    with pytest.raises(InsufficientFundsError) as exc:
        await market.fulfill_buy_order("alice", str(order.id), str(card.id))
    assert exc.value.message == "Buyer no longer has enough credits"
    assert await owner_of(card) == "alice"
    assert await BuyOrder.find_all().count() == 1
    assert await ledger.get_balance("alice") == 0


async def test_gift_order_moves_no_credits(character):
    order = await market.create_buy_order("bob", "actor-1-100")
    card = await make_card("alice")
    await market.fulfill_buy_order("alice", str(order.id), str(card.id))
    assert await owner_of(card) == "bob"
    assert await LedgerEntry.find_all().count() == 0


async def test_fulfill_rules(fund, character):
    await fund("bob", 100)
    order = await market.create_buy_order("bob", "actor-1-100", 10)
    other = await make_card("alice", "actor-9-100")
    with pytest.raises(InvalidInputError):
        await market.fulfill_buy_order("alice", str(order.id), str(other.id))

    card = await make_card("carol")
    with pytest.raises(NotOwnedError):
        await market.fulfill_buy_order("alice", str(order.id), str(card.id))

    await market.list_card("carol", str(card.id), 5)
    with pytest.raises(ConflictError):
        await market.fulfill_buy_order("carol", str(order.id), str(card.id))

    with pytest.raises(ConflictError):
        await market.fulfill_buy_order("bob", str(order.id), str(card.id))
    assert await ledger.get_balance("bob") == 100


async def test_create_order_rules(fund, character):
    with pytest.raises(NotFoundError):
        await market.create_buy_order("bob", "actor-404")
    with pytest.raises(InvalidInputError):
        await market.create_buy_order("bob", "actor-1-100", -1)
    with pytest.raises(InsufficientFundsError):
        await market.create_buy_order("bob", "actor-1-100", 10)
    await market.create_buy_order("bob", "actor-1-100")
    with pytest.raises(ConflictError):
        await market.create_buy_order("bob", "actor-1-100")


async def test_cancel_order_requester_only(character):
    order = await market.create_buy_order("bob", "actor-1-100")
    with pytest.raises(NotOwnedError):
        await market.cancel_buy_order("alice", str(order.id))
    await market.cancel_buy_order("bob", str(order.id))
    assert await market.browse_buy_orders() == []

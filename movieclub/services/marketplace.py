"""
Marketplace listings and buy orders.

Settlements lock every entity they touch (listing or order, card, both
balances), re-read them under the lock and run every check before the first
write. A caller that lost a race sees NotFound or Conflict and nothing moves.
"""

from typing import Any

from pymongo.errors import DuplicateKeyError

from movieclub.core.activity import log_event, record_quest_progress
from movieclub.core.exceptions import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    NotOwnedError,
)
from movieclub.core.locks import balance_key, entity_lock
from movieclub.core.logging import get_logger
from movieclub.core.timeutil import utcnow
from movieclub.db.lookup import get_by_id
from movieclub.models.balance import Currency
from movieclub.models.card import Card, CharacterPortrayal
from movieclub.models.listing import BuyOrder, Listing
from movieclub.services import ledger
from movieclub.services.ledger import TransferContext

log = get_logger(__name__)


def card_key(card_id: str) -> str:
    return f"card:{card_id}"


def _credits(user_id: str) -> str:
    return balance_key(user_id, Currency.CREDITS.value)


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


async def listing_for_card(card_id: str) -> Listing | None:
    return await Listing.find_one(Listing.card_id == card_id)


def listing_to_public(listing: Listing, card: Card | None = None) -> dict[str, Any]:
    return {
        "id": str(listing.id),
        "card_id": listing.card_id,
        "seller_user_id": listing.seller_user_id,
        "asking_price": listing.asking_price,
        "created_at": listing.created_at.isoformat(),
        "card": card.to_public() if card else None,
    }


def order_to_public(order: BuyOrder) -> dict[str, Any]:
    return {
        "id": str(order.id),
        "requester_user_id": order.requester_user_id,
        "character_id": order.character_id,
        "offer_price": order.offer_price,
        "created_at": order.created_at.isoformat(),
    }


# --- Listings ---


async def list_card(user_id: str, card_id: str, asking_price: Any) -> Listing:
    if not _is_int(asking_price) or asking_price < 1:
        raise InvalidInputError("Price must be a positive integer")

    async with entity_lock(card_key(card_id)):
        card = await get_by_id(Card, card_id)
        if card is None:
            raise NotFoundError("Card not found")
        if card.user_id != user_id:
            raise NotOwnedError("You don't own this card")
        if await listing_for_card(card_id) is not None:
            raise ConflictError("Card is already listed")
        listing = Listing(card_id=card_id, seller_user_id=user_id, asking_price=asking_price)
        try:
            await listing.insert()
        except DuplicateKeyError as exc:
            raise ConflictError("Card is already listed") from exc
    log.info("card_listed", user_id=user_id, card_id=card_id, listing_id=str(listing.id), price=asking_price)
    return listing


async def delist_card(user_id: str, listing_id: str) -> None:
    listing = await get_by_id(Listing, listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")

    async with entity_lock(f"listing:{listing_id}", card_key(listing.card_id)):
        listing = await get_by_id(Listing, listing_id)
        if listing is None:
            raise NotFoundError("Listing not found")
        if listing.seller_user_id != user_id:
            raise NotOwnedError("Only the seller can delist this card")
        await listing.delete()
    log.info("card_delisted", user_id=user_id, listing_id=listing_id)


async def buy_listing(user_id: str, listing_id: str) -> dict[str, Any]:
    listing = await get_by_id(Listing, listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    keys = (
        f"listing:{listing_id}",
        card_key(listing.card_id),
        _credits(user_id),
        _credits(listing.seller_user_id),
    )

    async with entity_lock(*keys):
        listing = await get_by_id(Listing, listing_id)
        if listing is None:
            raise NotFoundError("Listing not found")
        seller_id = listing.seller_user_id
        price = listing.asking_price
        if seller_id == user_id:
            raise ConflictError("You cannot buy your own listing")
        await ledger.require_funds(user_id, price)
        card = await get_by_id(Card, listing.card_id)
        if card is None:
            raise NotFoundError("Card no longer exists")
        if card.user_id != seller_id:
            raise ConflictError("Card was sold")

        context = TransferContext(card_id=listing.card_id, listing_id=listing_id)
        await ledger.debit(
            user_id, price, "marketplace_buy", context.model_copy(update={"counterparty_user_id": seller_id})
        )
        await ledger.credit(
            seller_id, price, "marketplace_sale", context.model_copy(update={"counterparty_user_id": user_id})
        )
        card.user_id = user_id
        card.acquired_at = utcnow()
        await card.save()
        await listing.delete()
        balance = await ledger.get_balance(user_id)

    log.info("listing_bought", listing_id=listing_id, card_id=str(card.id), buyer=user_id, seller=seller_id, price=price)
    await log_event(seller_id, "marketplace_sale", "card", str(card.id), {"buyer_user_id": user_id, "price": price})
    await record_quest_progress(seller_id, "marketplace_sale")
    await record_quest_progress(user_id, "marketplace_buy")
    return {"card": card.to_public(), "price": price, "new_balance": balance}


async def browse_listings(
    character_id: str | None = None,
    seller_user_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    query: dict[str, Any] = {}
    if seller_user_id:
        query["seller_user_id"] = seller_user_id
    if character_id:
        cards = await Card.find(Card.character_id == character_id).to_list()
        query["card_id"] = {"$in": [str(c.id) for c in cards]}
    listings = await Listing.find(query).sort(-Listing.created_at).skip(offset).limit(limit).to_list()
    out = []
    for listing in listings:
        card = await get_by_id(Card, listing.card_id)
        if card is None:
            continue
        out.append(listing_to_public(listing, card))
    return out


# --- Buy orders ---


async def create_buy_order(user_id: str, character_id: str, offer_price: Any = 0) -> BuyOrder:
    if not _is_int(offer_price) or offer_price < 0:
        raise InvalidInputError("Offer must be a non-negative integer")
    if await CharacterPortrayal.find_one(CharacterPortrayal.character_id == character_id) is None:
        raise NotFoundError("Character not found")
    if offer_price > 0:
        # soft check; the requester's funds are verified again at fulfillment
        await ledger.require_funds(user_id, offer_price)

    async with entity_lock(f"buy_orders:{user_id}:{character_id}"):
        existing = await BuyOrder.find_one(
            BuyOrder.requester_user_id == user_id, BuyOrder.character_id == character_id
        )
        if existing is not None:
            raise ConflictError("You already have an order for this character")
        order = BuyOrder(requester_user_id=user_id, character_id=character_id, offer_price=offer_price)
        await order.insert()
    log.info("buy_order_created", user_id=user_id, character_id=character_id, offer_price=offer_price)
    return order


async def cancel_buy_order(user_id: str, order_id: str) -> None:
    async with entity_lock(f"order:{order_id}"):
        order = await get_by_id(BuyOrder, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.requester_user_id != user_id:
            raise NotOwnedError("Only the requester can cancel this order")
        await order.delete()
    log.info("buy_order_cancelled", user_id=user_id, order_id=order_id)


async def fulfill_buy_order(user_id: str, order_id: str, card_id: str) -> dict[str, Any]:
    order = await get_by_id(BuyOrder, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    requester_id = order.requester_user_id
    if requester_id == user_id:
        raise ConflictError("You cannot fulfill your own order")
    keys = (f"order:{order_id}", card_key(card_id), _credits(user_id), _credits(requester_id))

    async with entity_lock(*keys):
        order = await get_by_id(BuyOrder, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        card = await get_by_id(Card, card_id)
        if card is None:
            raise NotFoundError("Card not found")
        if card.character_id != order.character_id:
            raise InvalidInputError("Card does not match this order")
        if card.user_id != user_id:
            raise NotOwnedError("You don't own this card")
        if await listing_for_card(card_id) is not None:
            raise ConflictError("Card is listed on the marketplace. Delist it first.")
        price = order.offer_price
        if price > 0:
            await ledger.require_funds(requester_id, price, message="Buyer no longer has enough credits")

        if price > 0:
            context = TransferContext(card_id=card_id, order_id=order_id)
            await ledger.debit(
                requester_id, price, "buy_order_fulfill",
                context.model_copy(update={"counterparty_user_id": user_id}),
            )
            await ledger.credit(
                user_id, price, "buy_order_sale",
                context.model_copy(update={"counterparty_user_id": requester_id}),
            )
        card.user_id = requester_id
        card.acquired_at = utcnow()
        await card.save()
        await order.delete()
        balance = await ledger.get_balance(user_id)

    log.info("buy_order_fulfilled", order_id=order_id, card_id=card_id, seller=user_id, buyer=requester_id, price=price)
    await log_event(requester_id, "buy_order_fulfilled", "card", card_id, {"seller_user_id": user_id, "price": price})
    await record_quest_progress(user_id, "marketplace_sale")
    return {"card": card.to_public(), "price": price, "new_balance": balance}


async def browse_buy_orders(
    character_id: str | None = None,
    requester_user_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[BuyOrder]:
    query: dict[str, Any] = {}
    if character_id:
        query["character_id"] = character_id
    if requester_user_id:
        query["requester_user_id"] = requester_user_id
    return await BuyOrder.find(query).sort(-BuyOrder.created_at).skip(offset).limit(limit).to_list()

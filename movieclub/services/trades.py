"""Card-and-credit trades between two users: create, accept, deny, cancel."""

from typing import Any

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
from movieclub.models.card import Card
from movieclub.models.trade import TradeOffer, TradeStatus
from movieclub.services import ledger
from movieclub.services.ledger import TransferContext
from movieclub.services.marketplace import card_key, listing_for_card

log = get_logger(__name__)


def _credit_amount(v: Any, name: str) -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise InvalidInputError(f"{name} must be a non-negative integer")
    return v


def _unique(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(i for i in ids if i))


def trade_to_public(t: TradeOffer) -> dict[str, Any]:
    return {
        "id": str(t.id),
        "initiator_user_id": t.initiator_user_id,
        "initiator_name": t.initiator_name,
        "counterparty_user_id": t.counterparty_user_id,
        "counterparty_name": t.counterparty_name,
        "offered_card_ids": t.offered_card_ids,
        "requested_card_ids": t.requested_card_ids,
        "offered_credits": t.offered_credits,
        "requested_credits": t.requested_credits,
        "status": t.status.value,
        "created_at": t.created_at.isoformat(),
        "resolved_at": t.resolved_at.isoformat() if t.resolved_at else None,
    }


async def _check_side(card_ids: list[str], owner_id: str, whose: str) -> None:
    for card_id in card_ids:
        card = await get_by_id(Card, card_id)
        if card is None:
            raise NotFoundError("Card not found", details={"card_id": card_id})
        if card.user_id != owner_id:
            raise NotOwnedError(f"{whose} don't own card {card_id}", details={"card_id": card_id})
        if await listing_for_card(card_id) is not None:
            raise ConflictError("Card is listed on the marketplace", details={"card_id": card_id})


async def create_trade(
    initiator_user_id: str,
    counterparty_user_id: str,
    offered_card_ids: list[str] | None = None,
    requested_card_ids: list[str] | None = None,
    offered_credits: Any = 0,
    requested_credits: Any = 0,
    initiator_name: str = "",
    counterparty_name: str = "",
) -> TradeOffer:
    if not counterparty_user_id or counterparty_user_id == initiator_user_id:
        raise InvalidInputError("Cannot trade with yourself")
    offered = _unique(offered_card_ids or [])
    requested = _unique(requested_card_ids or [])
    give = _credit_amount(offered_credits, "offered_credits")
    take = _credit_amount(requested_credits, "requested_credits")
    if not offered and not give:
        raise InvalidInputError("You must offer at least one card or some credits")
    if not requested and not take:
        raise InvalidInputError("You must ask for at least one card or some credits")

    await _check_side(offered, initiator_user_id, "You")
    await _check_side(requested, counterparty_user_id, "They")
    if give > 0:
        await ledger.require_funds(initiator_user_id, give)

    trade = TradeOffer(
        initiator_user_id=initiator_user_id,
        initiator_name=initiator_name,
        counterparty_user_id=counterparty_user_id,
        counterparty_name=counterparty_name,
        offered_card_ids=offered,
        requested_card_ids=requested,
        offered_credits=give,
        requested_credits=take,
    )
    await trade.insert()
    log.info("trade_created", trade_id=str(trade.id), initiator=initiator_user_id, counterparty=counterparty_user_id)
    return trade


async def _live_cards(card_ids: list[str], owner_id: str) -> list[Card]:
    """Cards still present on one side; deleted ones drop out, moved or listed ones abort."""
    cards = []
    for card_id in card_ids:
        card = await get_by_id(Card, card_id)
        if card is None:
            continue
        if card.user_id != owner_id:
            raise ConflictError("A card in this trade has changed hands", details={"card_id": card_id})
        if await listing_for_card(card_id) is not None:
            raise ConflictError("A card in this trade is listed on the marketplace", details={"card_id": card_id})
        cards.append(card)
    return cards


async def accept_trade(trade_id: str, user_id: str) -> TradeOffer:
    trade = await get_by_id(TradeOffer, trade_id)
    if trade is None:
        raise NotFoundError("Trade not found")
    initiator = trade.initiator_user_id
    counterparty = trade.counterparty_user_id
    keys = [
        f"trade:{trade_id}",
        balance_key(initiator, Currency.CREDITS.value),
        balance_key(counterparty, Currency.CREDITS.value),
    ]
    keys += [card_key(c) for c in trade.offered_card_ids + trade.requested_card_ids]

    async with entity_lock(*keys):
        trade = await get_by_id(TradeOffer, trade_id)
        if trade is None:
            raise NotFoundError("Trade not found")
        if trade.counterparty_user_id != user_id:
            raise NotOwnedError("Only the recipient can accept this trade")
        if trade.status != TradeStatus.PENDING:
            raise ConflictError(f"Trade is already {trade.status.value}")

        giving = await _live_cards(trade.offered_card_ids, initiator)
        receiving = await _live_cards(trade.requested_card_ids, counterparty)
        if not giving and not receiving and not trade.offered_credits and not trade.requested_credits:
            raise ConflictError("None of the cards in this trade exist anymore")
        if trade.offered_credits:
            await ledger.require_funds(
                initiator, trade.offered_credits, message="The other player no longer has enough credits"
            )
        if trade.requested_credits:
            await ledger.require_funds(counterparty, trade.requested_credits)

        now = utcnow()
        for card in giving:
            card.user_id = counterparty
            card.acquired_at = now
            await card.save()
        for card in receiving:
            card.user_id = initiator
            card.acquired_at = now
            await card.save()

        context = TransferContext(trade_id=trade_id)
        for payer, payee, amount in (
            (initiator, counterparty, trade.offered_credits),
            (counterparty, initiator, trade.requested_credits),
        ):
            if amount:
                await ledger.debit(payer, amount, "trade", context.model_copy(update={"counterparty_user_id": payee}))
                await ledger.credit(payee, amount, "trade", context.model_copy(update={"counterparty_user_id": payer}))

        trade.status = TradeStatus.ACCEPTED
        trade.resolved_at = now
        await trade.save()

    log.info(
        "trade_accepted",
        trade_id=trade_id,
        initiator=initiator,
        counterparty=counterparty,
        cards_given=len(giving),
        cards_received=len(receiving),
        offered_credits=trade.offered_credits,
        requested_credits=trade.requested_credits,
    )
    for uid in (initiator, counterparty):
        await log_event(uid, "trade_accepted", "trade", trade_id)
        await record_quest_progress(uid, "complete_trade")
    return trade


async def _close(trade_id: str, user_id: str, as_initiator: bool) -> TradeOffer:
    async with entity_lock(f"trade:{trade_id}"):
        trade = await get_by_id(TradeOffer, trade_id)
        if trade is None:
            raise NotFoundError("Trade not found")
        party = trade.initiator_user_id if as_initiator else trade.counterparty_user_id
        if party != user_id:
            raise NotOwnedError(
                "Only the sender can cancel this trade" if as_initiator else "Only the recipient can deny this trade"
            )
        if trade.status != TradeStatus.PENDING:
            raise ConflictError(f"Trade is already {trade.status.value}")
        trade.status = TradeStatus.DENIED
        trade.resolved_at = utcnow()
        await trade.save()
    log.info("trade_cancelled" if as_initiator else "trade_denied", trade_id=trade_id, user_id=user_id)
    return trade


async def deny_trade(trade_id: str, user_id: str) -> TradeOffer:
    return await _close(trade_id, user_id, as_initiator=False)


async def cancel_trade(trade_id: str, user_id: str) -> TradeOffer:
    return await _close(trade_id, user_id, as_initiator=True)


async def list_trades(user_id: str, status: TradeStatus | None = None) -> list[TradeOffer]:
    query: dict[str, Any] = {"$or": [{"initiator_user_id": user_id}, {"counterparty_user_id": user_id}]}
    if status is not None:
        query["status"] = status.value
    return await TradeOffer.find(query).sort(-TradeOffer.created_at).to_list()

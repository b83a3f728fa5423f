"""Balance ledger: atomic credit/debit over per-(user, currency) balances."""

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from movieclub.core.exceptions import InsufficientFundsError, InvalidInputError
from movieclub.core.locks import balance_key, entity_lock
from movieclub.core.logging import get_logger
from movieclub.core.timeutil import utcnow
from movieclub.models.balance import Balance, Currency
from movieclub.models.ledger import LedgerEntry

log = get_logger(__name__)


class _Context(BaseModel):
    model_config = ConfigDict(extra="forbid")


class BetContext(_Context):
    bet: int
    count: int | None = None
    selection: str | int | None = None
    symbols: list[str] | None = None
    result: str | int | None = None
    payout: int | None = None
    action: str | None = None
    event_id: str | None = None
    side: str | None = None


class TransferContext(_Context):
    card_id: str | None = None
    card_ids: list[str] | None = None
    listing_id: str | None = None
    order_id: str | None = None
    trade_id: str | None = None
    counterparty_user_id: str | None = None


class LotteryContext(_Context):
    draw_id: str
    count: int | None = None
    prize_pool: int | None = None


class PackContext(_Context):
    pack_id: str
    card_ids: list[str] | None = None


class GrantContext(_Context):
    note: str | None = None


REASON_CONTEXT: dict[str, type[_Context]] = {
    "casino_slots": BetContext,
    "casino_slots_win": BetContext,
    "casino_roulette": BetContext,
    "casino_roulette_win": BetContext,
    "casino_blackjack": BetContext,
    "casino_blackjack_win": BetContext,
    "casino_blackjack_push": BetContext,
    "casino_bets": BetContext,
    "casino_bets_win": BetContext,
    "scratch_off": BetContext,
    "scratch_off_win": BetContext,
    "lottery_ticket": LotteryContext,
    "lottery_win": LotteryContext,
    "marketplace_buy": TransferContext,
    "marketplace_sale": TransferContext,
    "buy_order_fulfill": TransferContext,
    "buy_order_sale": TransferContext,
    "trade": TransferContext,
    "pack_purchase": PackContext,
    "admin_grant": GrantContext,
    "admin_deduct": GrantContext,
}


def _check_amount(amount: Any) -> int:
    # bool is an int subclass; True is not a valid amount
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidInputError("Amount must be a positive integer", details={"amount": amount})
    return amount


def _check_metadata(reason: str, metadata: BaseModel | dict[str, Any] | None) -> dict[str, Any]:
    context_type = REASON_CONTEXT.get(reason)
    if context_type is None:
        raise InvalidInputError(f"Invalid reason: {reason}")
    if isinstance(metadata, BaseModel):
        if not isinstance(metadata, context_type):
            raise InvalidInputError(
                f"Reason {reason} expects {context_type.__name__}, got {type(metadata).__name__}"
            )
        return metadata.model_dump(exclude_none=True)
    try:
        return context_type.model_validate(metadata or {}).model_dump(exclude_none=True)
    except ValidationError as exc:
        raise InvalidInputError(
            f"Invalid metadata for {reason}", details={"errors": exc.errors(include_url=False)}
        ) from exc


async def _find_balance(user_id: str, currency: Currency) -> Balance | None:
    return await Balance.find_one(Balance.user_id == user_id, Balance.currency == currency)


async def get_balance(user_id: str, currency: Currency = Currency.CREDITS) -> int:
    """Return current balance for user (0 if no record). Does not create one."""
    bal = await _find_balance(user_id, currency)
    return bal.balance if bal else 0


async def get_balances(user_id: str) -> dict[str, int]:
    rows = await Balance.find(Balance.user_id == user_id).to_list()
    out = {c.value: 0 for c in Currency}
    for row in rows:
        out[row.currency.value] = row.balance
    return out


async def _apply(
    user_id: str,
    currency: Currency,
    delta: int,
    reason: str,
    metadata: dict[str, Any],
) -> tuple[LedgerEntry, int]:
    async with entity_lock(balance_key(user_id, currency.value)):
        balance_doc = await _find_balance(user_id, currency)
        current = balance_doc.balance if balance_doc else 0
        balance_after = current + delta
        if balance_after < 0:
            raise InsufficientFundsError(
                "Not enough credits" if currency == Currency.CREDITS else f"Not enough {currency.value}",
                details={"balance": current, "required": -delta, "currency": currency.value},
            )
        if balance_doc is None:
            balance_doc = Balance(user_id=user_id, currency=currency, balance=balance_after)
            await balance_doc.insert()
        else:
            balance_doc.balance = balance_after
            balance_doc.updated_at = utcnow()
            await balance_doc.save()

        entry = LedgerEntry(
            user_id=user_id,
            currency=currency,
            amount=delta,
            balance_after=balance_after,
            reason=reason,
            metadata=metadata,
        )
        await entry.insert()
    log.debug("ledger_applied", user_id=user_id, currency=currency.value, amount=delta, reason=reason)
    return entry, balance_after


async def credit(
    user_id: str,
    amount: int,
    reason: str,
    metadata: BaseModel | dict[str, Any] | None = None,
    currency: Currency = Currency.CREDITS,
) -> tuple[LedgerEntry, int]:
    """Add ``amount`` to the balance. Returns (ledger_entry, balance_after)."""
    amount = _check_amount(amount)
    meta = _check_metadata(reason, metadata)
    return await _apply(user_id, currency, amount, reason, meta)


async def debit(
    user_id: str,
    amount: int,
    reason: str,
    metadata: BaseModel | dict[str, Any] | None = None,
    currency: Currency = Currency.CREDITS,
) -> tuple[LedgerEntry, int]:
    """
    Remove ``amount`` from the balance.
    The funds check and the write happen under the balance lock; on insufficient
    funds nothing is written and InsufficientFundsError is raised.
    """
    amount = _check_amount(amount)
    meta = _check_metadata(reason, metadata)
    return await _apply(user_id, currency, -amount, reason, meta)


async def require_funds(user_id: str, amount: int, currency: Currency = Currency.CREDITS, message: str | None = None) -> int:
    """Raise InsufficientFundsError unless the balance covers ``amount``. Returns the balance."""
    balance = await get_balance(user_id, currency)
    if balance < amount:
        raise InsufficientFundsError(
            message or "Not enough credits",
            details={"balance": balance, "required": amount, "currency": currency.value},
        )
    return balance


async def list_entries(
    user_id: str,
    currency: Currency | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[LedgerEntry]:
    """Ledger entries for a user, newest first."""
    query = LedgerEntry.find(LedgerEntry.user_id == user_id)
    if currency is not None:
        query = LedgerEntry.find(LedgerEntry.user_id == user_id, LedgerEntry.currency == currency)
    # _id breaks ties between entries written within the same millisecond
    return await query.sort(-LedgerEntry.created_at, "-_id").skip(offset).limit(limit).to_list()


async def reconcile(user_id: str, currency: Currency = Currency.CREDITS) -> dict[str, int | bool]:
    """Compare the stored balance with the sum of the user's ledger entries."""
    entries = await LedgerEntry.find(
        LedgerEntry.user_id == user_id, LedgerEntry.currency == currency
    ).to_list()
    ledger_sum = sum(e.amount for e in entries)
    balance = await get_balance(user_id, currency)
    return {"balance": balance, "ledger_sum": ledger_sum, "consistent": balance == ledger_sum}


def entry_to_public(e: LedgerEntry) -> dict[str, Any]:
    return {
        "id": str(e.id),
        "currency": e.currency.value,
        "amount": e.amount,
        "balance_after": e.balance_after,
        "reason": e.reason,
        "metadata": e.metadata,
        "created_at": e.created_at.isoformat(),
    }

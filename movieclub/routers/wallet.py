from fastapi import APIRouter, Query

from movieclub.core.activity import get_quest_progress
from movieclub.models.balance import Currency
from movieclub.services import ledger

router = APIRouter()


@router.get("/{user_id}")
async def wallet(
    user_id: str,
    currency: Currency | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Balances in every currency plus ledger entries (newest first)."""
    balances = await ledger.get_balances(user_id)
    entries = await ledger.list_entries(user_id, currency=currency, limit=limit, offset=offset)
    return {
        "user_id": user_id,
        "balances": balances,
        "entries": [ledger.entry_to_public(e) for e in entries],
        "limit": limit,
        "offset": offset,
    }


@router.get("/{user_id}/quests")
async def wallet_quests(user_id: str):
    return {"user_id": user_id, "progress": await get_quest_progress(user_id)}

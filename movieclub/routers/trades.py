from fastapi import APIRouter
from pydantic import BaseModel, Field

from movieclub.deps import acting_user
from movieclub.models.trade import TradeStatus
from movieclub.services import trades as trades_service

router = APIRouter()


class CreateTradeRequest(BaseModel):
    user_id: str
    user_name: str = ""
    counterparty_user_id: str
    counterparty_name: str = ""
    offered_card_ids: list[str] = Field(default_factory=list)
    requested_card_ids: list[str] = Field(default_factory=list)
    offered_credits: int = 0
    requested_credits: int = 0


class TradeActionRequest(BaseModel):
    user_id: str


@router.get("")
async def list_trades(user_id: str, status: TradeStatus | None = None):
    trades = await trades_service.list_trades(user_id, status=status)
    return {"trades": [trades_service.trade_to_public(t) for t in trades]}


@router.post("")
async def create_trade(body: CreateTradeRequest):
    trade = await trades_service.create_trade(
        acting_user(body.user_id),
        body.counterparty_user_id,
        offered_card_ids=body.offered_card_ids,
        requested_card_ids=body.requested_card_ids,
        offered_credits=body.offered_credits,
        requested_credits=body.requested_credits,
        initiator_name=body.user_name,
        counterparty_name=body.counterparty_name,
    )
    return trades_service.trade_to_public(trade)


@router.post("/{trade_id}/accept")
async def accept_trade(trade_id: str, body: TradeActionRequest):
    trade = await trades_service.accept_trade(trade_id, acting_user(body.user_id))
    return trades_service.trade_to_public(trade)


@router.post("/{trade_id}/deny")
async def deny_trade(trade_id: str, body: TradeActionRequest):
    trade = await trades_service.deny_trade(trade_id, acting_user(body.user_id))
    return trades_service.trade_to_public(trade)


@router.post("/{trade_id}/cancel")
async def cancel_trade(trade_id: str, body: TradeActionRequest):
    trade = await trades_service.cancel_trade(trade_id, acting_user(body.user_id))
    return trades_service.trade_to_public(trade)

from fastapi import APIRouter
from pydantic import BaseModel

from movieclub.deps import acting_user
from movieclub.services import lottery as lottery_service

router = APIRouter()


class TicketRequest(BaseModel):
    user_id: str
    user_name: str = ""
    count: int = 1


@router.get("")
async def lottery_state(user_id: str | None = None):
    """Open draw, pool and the caller's tickets. Resolves any draw whose period has ended."""
    return await lottery_service.get_state(user_id)


@router.post("/tickets")
async def lottery_buy(body: TicketRequest):
    return await lottery_service.buy_tickets(acting_user(body.user_id), body.user_name, body.count)

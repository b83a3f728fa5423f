from fastapi import APIRouter
from pydantic import BaseModel

from movieclub.deps import acting_user
from movieclub.services import blackjack as blackjack_service
from movieclub.services import games as games_service
from movieclub.services.game_settings import get_game_settings

router = APIRouter()


class SlotsRequest(BaseModel):
    user_id: str
    bet: int


class RouletteRequest(BaseModel):
    user_id: str
    bet: int
    selection: int | str


class ScratchOffRequest(BaseModel):
    user_id: str
    count: int = 1


class PlaceBetRequest(BaseModel):
    user_id: str
    side: str
    amount: int


class BlackjackRequest(BaseModel):
    user_id: str
    action: str
    bet: int | None = None


@router.get("/settings")
async def casino_settings():
    """Current (normalized) game configuration."""
    return (await get_game_settings()).model_dump()


@router.post("/slots")
async def casino_slots(body: SlotsRequest):
    return await games_service.spin_slots(acting_user(body.user_id), body.bet)


@router.post("/roulette")
async def casino_roulette(body: RouletteRequest):
    return await games_service.spin_roulette(acting_user(body.user_id), body.bet, body.selection)


@router.post("/scratch-off")
async def casino_scratch_off(body: ScratchOffRequest):
    return await games_service.buy_scratch_offs(acting_user(body.user_id), body.count)


@router.get("/bets")
async def casino_bets():
    events = await games_service.list_events(active_only=True)
    return {"events": [games_service.event_to_public(e) for e in events]}


@router.post("/bets/{event_id}")
async def casino_place_bet(event_id: str, body: PlaceBetRequest):
    return await games_service.place_bet(acting_user(body.user_id), event_id, body.side, body.amount)


@router.get("/blackjack")
async def blackjack_state(user_id: str):
    """Hand in progress for ``user_id`` with the dealer hole card hidden."""
    return await blackjack_service.get_state(user_id)


@router.post("/blackjack")
async def blackjack_play(body: BlackjackRequest):
    """Deal, hit, stand or split."""
    return await blackjack_service.play(acting_user(body.user_id), body.action, bet=body.bet)

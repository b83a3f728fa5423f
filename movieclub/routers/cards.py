from fastapi import APIRouter
from pydantic import BaseModel

from movieclub.deps import acting_user
from movieclub.services import packs as packs_service

router = APIRouter()


class BuyPackRequest(BaseModel):
    user_id: str


@router.get("/packs")
async def packs():
    """Packs currently on sale."""
    rows = await packs_service.list_packs(active_only=True)
    return {"packs": [packs_service.pack_to_public(p) for p in rows]}


@router.post("/packs/{pack_id}/buy")
async def buy_pack(pack_id: str, body: BuyPackRequest):
    return await packs_service.buy_pack(acting_user(body.user_id), pack_id)


@router.get("/users/{user_id}")
async def user_cards(user_id: str):
    cards = await packs_service.list_cards(user_id)
    return {"cards": [c.to_public() for c in cards]}

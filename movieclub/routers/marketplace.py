from fastapi import APIRouter, Query
from pydantic import BaseModel

from movieclub.deps import acting_user
from movieclub.services import marketplace as marketplace_service

router = APIRouter()


class ListingRequest(BaseModel):
    user_id: str
    card_id: str
    asking_price: int


class BuyRequest(BaseModel):
    user_id: str


class BuyOrderRequest(BaseModel):
    user_id: str
    character_id: str
    offer_price: int = 0


class FulfillRequest(BaseModel):
    user_id: str
    card_id: str


@router.get("/listings")
async def listings(
    character_id: str | None = None,
    seller_user_id: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    out = await marketplace_service.browse_listings(
        character_id=character_id, seller_user_id=seller_user_id, limit=limit, offset=offset
    )
    return {"listings": out, "limit": limit, "offset": offset}


@router.post("/listings")
async def create_listing(body: ListingRequest):
    listing = await marketplace_service.list_card(acting_user(body.user_id), body.card_id, body.asking_price)
    return marketplace_service.listing_to_public(listing)


@router.delete("/listings/{listing_id}")
async def delete_listing(listing_id: str, user_id: str):
    await marketplace_service.delist_card(acting_user(user_id), listing_id)
    return {"ok": True}


@router.post("/listings/{listing_id}/buy")
async def buy_listing(listing_id: str, body: BuyRequest):
    """Buy a listed card; returns the transferred card."""
    return await marketplace_service.buy_listing(acting_user(body.user_id), listing_id)


@router.get("/orders")
async def buy_orders(
    character_id: str | None = None,
    requester_user_id: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    orders = await marketplace_service.browse_buy_orders(
        character_id=character_id, requester_user_id=requester_user_id, limit=limit, offset=offset
    )
    return {"orders": [marketplace_service.order_to_public(o) for o in orders], "limit": limit, "offset": offset}


@router.post("/orders")
async def create_buy_order(body: BuyOrderRequest):
    order = await marketplace_service.create_buy_order(acting_user(body.user_id), body.character_id, body.offer_price)
    return marketplace_service.order_to_public(order)


@router.delete("/orders/{order_id}")
async def cancel_buy_order(order_id: str, user_id: str):
    await marketplace_service.cancel_buy_order(acting_user(user_id), order_id)
    return {"ok": True}


@router.post("/orders/{order_id}/fulfill")
async def fulfill_buy_order(order_id: str, body: FulfillRequest):
    return await marketplace_service.fulfill_buy_order(acting_user(body.user_id), order_id, body.card_id)

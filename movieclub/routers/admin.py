from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from movieclub.core.exceptions import InvalidInputError, UnauthorizedError
from movieclub.core.logging import get_logger
from movieclub.core.security import ADMIN_SESSION_MAX_AGE, check_admin_password, create_session_cookie
from movieclub.deps import ADMIN_COOKIE_NAME, require_admin
from movieclub.models.balance import Currency
from movieclub.models.card import Rarity
from movieclub.services import games as games_service
from movieclub.services import ledger
from movieclub.services import lottery as lottery_service
from movieclub.services import packs as packs_service
from movieclub.services.game_settings import get_game_settings, save_game_settings
from movieclub.services.ledger import GrantContext

router = APIRouter()
log = get_logger(__name__)


class LoginRequest(BaseModel):
    password: str


class CreditAdjustRequest(BaseModel):
    user_id: str
    amount: int  # negative deducts
    currency: Currency = Currency.CREDITS
    note: str | None = None


class BetEventRequest(BaseModel):
    title: str
    side_a: str
    side_b: str
    odds_a: float
    odds_b: float
    min_bet: int = 1
    max_bet: int = 100
    is_active: bool = True


class BetEventUpdate(BaseModel):
    title: str | None = None
    side_a: str | None = None
    side_b: str | None = None
    odds_a: float | None = None
    odds_b: float | None = None
    min_bet: int | None = None
    max_bet: int | None = None
    is_active: bool | None = None


class PackRequest(BaseModel):
    name: str | None = None
    image_url: str | None = None
    price: int | None = None
    cards_per_pack: int | None = None
    allowed_rarities: list[Rarity] | None = None
    allowed_card_types: list[str] | None = None
    is_active: bool | None = None
    is_free: bool | None = None
    rarity_weights: dict[str, float] | None = None
    holo_chance: float | None = None
    allow_prismatic: bool | None = None
    prismatic_chance: float | None = None
    allow_dark_matter: bool | None = None
    dark_matter_chance: float | None = None
    sort_order: int | None = None


class PoolEntryRequest(BaseModel):
    character_id: str
    actor_name: str
    character_name: str = ""
    movie_title: str = ""
    movie_tmdb_id: int | None = None
    profile_path: str = ""
    rarity: Rarity = Rarity.UNCOMMON
    card_type: str = "actor"
    popularity: float = 0.0


@router.post("/login")
async def admin_login(body: LoginRequest, response: Response):
    """Exchange ADMIN_PASSWORD for a signed session cookie."""
    if not check_admin_password(body.password):
        log.warning("admin_login_failed")
        raise UnauthorizedError("Invalid password")
    response.set_cookie(
        key=ADMIN_COOKIE_NAME,
        value=create_session_cookie({"role": "admin"}),
        max_age=ADMIN_SESSION_MAX_AGE,
        httponly=True,
        secure=False,  # set True in prod with HTTPS
        samesite="lax",
        path="/",
    )
    return {"ok": True}


@router.post("/logout")
async def admin_logout(response: Response):
    response.delete_cookie(ADMIN_COOKIE_NAME, path="/")
    return {"ok": True}


@router.get("/game-settings")
async def admin_game_settings(admin: dict = Depends(require_admin)):
    return (await get_game_settings()).model_dump()


@router.put("/game-settings")
async def admin_save_game_settings(body: dict[str, Any], admin: dict = Depends(require_admin)):
    """Merge the given sections over the stored settings; invalid values fall back to defaults."""
    return (await save_game_settings(body)).model_dump()


@router.post("/credits")
async def admin_adjust_credits(body: CreditAdjustRequest, admin: dict = Depends(require_admin)):
    if body.amount == 0:
        raise InvalidInputError("Amount must be non-zero")
    context = GrantContext(note=body.note)
    if body.amount > 0:
        entry, balance = await ledger.credit(body.user_id, body.amount, "admin_grant", context, currency=body.currency)
    else:
        entry, balance = await ledger.debit(body.user_id, -body.amount, "admin_deduct", context, currency=body.currency)
    log.info("admin_credit_adjusted", user_id=body.user_id, amount=body.amount, currency=body.currency.value)
    return {"entry": ledger.entry_to_public(entry), "new_balance": balance}


@router.get("/reconcile/{user_id}")
async def admin_reconcile(user_id: str, admin: dict = Depends(require_admin)):
    """Stored balance versus ledger sum, per currency."""
    return {c.value: await ledger.reconcile(user_id, c) for c in Currency}


@router.get("/bets")
async def admin_bets(admin: dict = Depends(require_admin)):
    events = await games_service.list_events(active_only=False)
    return {"events": [games_service.event_to_public(e) for e in events]}


@router.post("/bets")
async def admin_create_bet(body: BetEventRequest, admin: dict = Depends(require_admin)):
    event = await games_service.create_event(body.model_dump())
    return games_service.event_to_public(event)


@router.patch("/bets/{event_id}")
async def admin_update_bet(event_id: str, body: BetEventUpdate, admin: dict = Depends(require_admin)):
    event = await games_service.update_event(event_id, body.model_dump(exclude_none=True))
    return games_service.event_to_public(event)


@router.get("/packs")
async def admin_packs(admin: dict = Depends(require_admin)):
    rows = await packs_service.list_packs(active_only=False)
    return {"packs": [packs_service.pack_to_public(p) for p in rows]}


@router.post("/packs")
async def admin_create_pack(body: PackRequest, admin: dict = Depends(require_admin)):
    pack = await packs_service.upsert_pack(body.model_dump(exclude_none=True))
    return packs_service.pack_to_public(pack)


@router.put("/packs/{pack_id}")
async def admin_update_pack(pack_id: str, body: PackRequest, admin: dict = Depends(require_admin)):
    pack = await packs_service.upsert_pack(body.model_dump(exclude_none=True), pack_id=pack_id)
    return packs_service.pack_to_public(pack)


@router.get("/pool")
async def admin_pool(rarity: Rarity | None = None, admin: dict = Depends(require_admin)):
    entries = await packs_service.list_pool(rarity)
    return {"entries": [e.model_dump(exclude={"id", "revision_id"}) for e in entries]}


@router.post("/pool")
async def admin_upsert_pool(body: PoolEntryRequest, admin: dict = Depends(require_admin)):
    entry = await packs_service.upsert_pool_entry(body.model_dump())
    return entry.model_dump(exclude={"id", "revision_id"})


@router.post("/lottery/reset")
async def admin_lottery_reset(admin: dict = Depends(require_admin)):
    """Clear the open period's tickets."""
    deleted = await lottery_service.reset_current()
    return {"deleted": deleted, "draw_id": lottery_service.current_draw_id()}


@router.post("/lottery/draws/{draw_id}")
async def admin_lottery_draw(draw_id: str, admin: dict = Depends(require_admin)):
    """Resolve a past period now (returns the stored result if already drawn)."""
    if draw_id >= lottery_service.current_draw_id():
        raise InvalidInputError("That draw period has not ended yet")
    draw = await lottery_service.run_draw(draw_id)
    return lottery_service.draw_to_public(draw)

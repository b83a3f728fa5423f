"""
Pack definitions, the character pool, and pack opening.

Opening a pack: one tier roll decides the best slot, fill slots roll rare or
uncommon, the slots are shuffled, then every slot picks a pool entry of its
rarity (cascading to lower rarities when that tier is empty). A character
appears at most once per pack, and a legendary already owned by anyone is
never dealt again.
"""

from typing import Any, Sequence

from beanie import PydanticObjectId
from pydantic import ValidationError

from movieclub.core.activity import log_event, record_quest_progress
from movieclub.core.config import get_settings
from movieclub.core.exceptions import ConflictError, InvalidInputError, NotFoundError
from movieclub.core.locks import balance_key, entity_lock
from movieclub.core.logging import get_logger
from movieclub.db.lookup import get_by_id
from movieclub.models.balance import Currency
from movieclub.models.card import Card, CharacterPortrayal, Finish, Rarity
from movieclub.models.pack import Pack, RarityWeights
from movieclub.services import casino
from movieclub.services import ledger
from movieclub.services.ledger import PackContext

log = get_logger(__name__)

# highest first; a pick cascades towards the end
CASCADE_ORDER = (Rarity.LEGENDARY, Rarity.EPIC, Rarity.RARE, Rarity.UNCOMMON)
FILL_RARE_CHANCE = 0.2
LEGENDARY_POOL_KEY = "pool:legendary"


def roll_tier(weights: RarityWeights, rng: casino.Uniform) -> Rarity:
    """Pick the pack tier from percentage weights (normalized if they do not sum to 100)."""
    table = [(r, max(0.0, getattr(weights, r.value))) for r in CASCADE_ORDER]
    total = sum(w for _, w in table)
    if total <= 0:
        return Rarity.UNCOMMON
    r = rng() * total
    acc = 0.0
    for rarity, weight in table:
        acc += weight
        if r < acc:
            return rarity
    return Rarity.UNCOMMON


def rarity_slots(tier: Rarity, count: int, rng: casino.Uniform) -> list[Rarity]:
    if tier == Rarity.UNCOMMON:
        slots = [Rarity.UNCOMMON] * count
    elif tier == Rarity.RARE:
        slots = [Rarity.RARE] + [Rarity.UNCOMMON] * (count - 1)
    else:
        fill = [Rarity.RARE if rng() < FILL_RARE_CHANCE else Rarity.UNCOMMON for _ in range(count - 1)]
        slots = [tier] + fill
    return casino.shuffle(slots, rng)


def pick_of_rarity(
    pool: Sequence[CharacterPortrayal],
    wanted: Rarity,
    rng: casino.Uniform,
) -> CharacterPortrayal:
    start = CASCADE_ORDER.index(wanted)
    for rarity in CASCADE_ORDER[start:]:
        subset = [c for c in pool if c.rarity == rarity]
        if subset:
            return casino.pick(subset, rng)
    # only higher tiers are left
    return casino.pick(pool, rng)


def roll_finish(pack: Pack, rng: casino.Uniform) -> Finish:
    """One draw against cumulative percent thresholds, rarest finish first."""
    holo = pack.holo_chance if pack.holo_chance is not None else get_settings().default_holo_chance * 100
    thresholds = []
    if pack.allow_dark_matter:
        thresholds.append((Finish.DARK_MATTER, pack.dark_matter_chance))
    if pack.allow_prismatic:
        thresholds.append((Finish.PRISMATIC, pack.prismatic_chance))
    thresholds.append((Finish.HOLO, holo))
    r = rng() * 100
    acc = 0.0
    for finish, chance in thresholds:
        acc += max(0.0, chance)
        if r < acc:
            return finish
    return Finish.NORMAL


def draw_pack(
    pack: Pack,
    pool: Sequence[CharacterPortrayal],
    rng: casino.Uniform,
) -> list[tuple[CharacterPortrayal, Finish]]:
    """Pure selection step: which characters, in which finish. ``pool`` is already filtered."""
    tier = roll_tier(pack.rarity_weights or RarityWeights(), rng)
    slots = rarity_slots(tier, pack.cards_per_pack, rng)
    picked: list[tuple[CharacterPortrayal, Finish]] = []
    used: set[str] = set()
    for wanted in slots:
        remaining = [c for c in pool if c.character_id not in used]
        if not remaining:
            break
        char = pick_of_rarity(remaining, wanted, rng)
        used.add(char.character_id)
        picked.append((char, roll_finish(pack, rng)))
    return picked


async def owned_legendary_ids() -> set[str]:
    cards = await Card.find(Card.rarity == Rarity.LEGENDARY).to_list()
    return {c.character_id for c in cards}


async def eligible_pool(pack: Pack) -> list[CharacterPortrayal]:
    query: dict[str, Any] = {}
    if pack.allowed_rarities:
        query["rarity"] = {"$in": [r.value for r in pack.allowed_rarities]}
    if pack.allowed_card_types:
        query["card_type"] = {"$in": pack.allowed_card_types}
    entries = await CharacterPortrayal.find(query).to_list()
    taken = await owned_legendary_ids()
    return [
        c for c in entries
        if c.profile_path.strip() and not (c.rarity == Rarity.LEGENDARY and c.character_id in taken)
    ]


async def buy_pack(user_id: str, pack_id: str, rng: casino.Uniform | None = None) -> dict[str, Any]:
    rng = rng or casino.default_rng
    pack = await get_by_id(Pack, pack_id)
    if pack is None or not pack.is_active:
        raise NotFoundError("Pack not found")
    price = 0 if pack.is_free else pack.price

    async with entity_lock(LEGENDARY_POOL_KEY, balance_key(user_id, Currency.CREDITS.value)):
        if price > 0:
            await ledger.require_funds(user_id, price)
        pool = await eligible_pool(pack)
        if len(pool) < pack.cards_per_pack:
            raise ConflictError("Character pool too small for this pack")

        picks = draw_pack(pack, pool, rng)
        cards = [
            Card(
                id=PydanticObjectId(),
                user_id=user_id,
                character_id=char.character_id,
                rarity=char.rarity,
                finish=finish,
                actor_name=char.actor_name,
                character_name=char.character_name,
                movie_title=char.movie_title,
                movie_tmdb_id=char.movie_tmdb_id,
                profile_path=char.profile_path,
                card_type=char.card_type,
            )
            for char, finish in picks
        ]
        if price > 0:
            await ledger.debit(
                user_id, price, "pack_purchase",
                PackContext(pack_id=pack_id, card_ids=[str(c.id) for c in cards]),
            )
        await Card.insert_many(cards)
        balance = await ledger.get_balance(user_id)

    log.info("pack_opened", user_id=user_id, pack_id=pack_id, price=price, characters=[c.character_id for c in cards])
    for card in cards:
        if card.rarity == Rarity.LEGENDARY:
            await log_event(user_id, "legendary_pull", "card", str(card.id), {"character_id": card.character_id})
    await record_quest_progress(user_id, "open_pack")
    return {
        "pack_id": pack_id,
        "cards": [c.to_public() for c in cards],
        "price": price,
        "new_balance": balance,
    }


# --- Admin & listing ---


def pack_to_public(p: Pack) -> dict[str, Any]:
    return {
        "id": str(p.id),
        "name": p.name,
        "image_url": p.image_url,
        "price": p.price,
        "cards_per_pack": p.cards_per_pack,
        "allowed_rarities": [r.value for r in p.allowed_rarities],
        "allowed_card_types": p.allowed_card_types,
        "is_active": p.is_active,
        "is_free": p.is_free,
        "rarity_weights": p.rarity_weights.model_dump() if p.rarity_weights else None,
        "holo_chance": p.holo_chance,
        "allow_prismatic": p.allow_prismatic,
        "prismatic_chance": p.prismatic_chance,
        "allow_dark_matter": p.allow_dark_matter,
        "dark_matter_chance": p.dark_matter_chance,
        "sort_order": p.sort_order,
    }


async def list_packs(active_only: bool = True) -> list[Pack]:
    query = {"is_active": True} if active_only else {}
    return await Pack.find(query).sort(+Pack.sort_order, +Pack.created_at).to_list()


def _clamp_percent(v: float | None) -> float | None:
    return None if v is None else min(100.0, max(0.0, float(v)))


async def upsert_pack(data: dict[str, Any], pack_id: str | None = None) -> Pack:
    if pack_id:
        pack = await get_by_id(Pack, pack_id)
        if pack is None:
            raise NotFoundError("Pack not found")
        merged = {**pack.model_dump(exclude={"id", "revision_id"}), **data}
    else:
        settings = get_settings()
        merged = {"price": settings.default_pack_price, "cards_per_pack": settings.default_cards_per_pack, **data}
    try:
        candidate = Pack.model_validate(merged)
    except ValidationError as exc:
        raise InvalidInputError("Invalid pack", details={"errors": exc.errors(include_url=False)}) from exc
    if not candidate.name.strip():
        raise InvalidInputError("Pack name is required")
    if candidate.price < 0 or candidate.cards_per_pack < 1:
        raise InvalidInputError("Price must be >= 0 and cards_per_pack >= 1")
    candidate.holo_chance = _clamp_percent(candidate.holo_chance)
    candidate.prismatic_chance = _clamp_percent(candidate.prismatic_chance)
    candidate.dark_matter_chance = _clamp_percent(candidate.dark_matter_chance)

    if pack_id:
        candidate.id = pack.id
        await candidate.replace()
    else:
        await candidate.insert()
    log.info("pack_saved", pack_id=str(candidate.id), name=candidate.name)
    return candidate


async def upsert_pool_entry(data: dict[str, Any]) -> CharacterPortrayal:
    try:
        entry = CharacterPortrayal.model_validate(data)
    except ValidationError as exc:
        raise InvalidInputError("Invalid pool entry", details={"errors": exc.errors(include_url=False)}) from exc
    existing = await CharacterPortrayal.find_one(CharacterPortrayal.character_id == entry.character_id)
    if existing is None:
        await entry.insert()
    else:
        entry.id = existing.id
        await entry.replace()
    log.info("pool_entry_saved", character_id=entry.character_id, rarity=entry.rarity.value)
    return entry


async def list_pool(rarity: Rarity | None = None) -> list[CharacterPortrayal]:
    query = {"rarity": rarity.value} if rarity else {}
    return await CharacterPortrayal.find(query).to_list()


async def list_cards(user_id: str) -> list[Card]:
    return await Card.find(Card.user_id == user_id).sort(-Card.acquired_at).to_list()

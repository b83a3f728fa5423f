"""
Blackjack hand state machine: player_turn -> dealer_turn -> resolved.

One session per user. ``deal`` stores the session before it debits the stake,
then resolves a natural at once or leaves the hand open. ``hit``/``stand``/``split``
advance it; a resolved session is deleted, so "no active hand" is simply a
missing record.
"""

from datetime import timedelta
from typing import Any

from pymongo.errors import DuplicateKeyError

from movieclub.core.activity import record_quest_progress
from movieclub.core.config import get_settings
from movieclub.core.exceptions import ConflictError, InsufficientFundsError, InvalidInputError
from movieclub.core.locks import balance_key, entity_lock
from movieclub.core.logging import get_logger
from movieclub.core.timeutil import utcnow
from movieclub.models.balance import Currency
from movieclub.models.blackjack_session import (
    HIDDEN_CARD,
    BlackjackSession,
    BlackjackStatus,
)
from movieclub.services import casino
from movieclub.services import ledger
from movieclub.services.game_settings import get_game_settings
from movieclub.services.ledger import BetContext

log = get_logger(__name__)

ACTIONS = ("deal", "hit", "stand", "split")


def _session_key(user_id: str) -> str:
    return f"blackjack:{user_id}"


def _locks(user_id: str) -> tuple[str, str]:
    return _session_key(user_id), balance_key(user_id, Currency.CREDITS.value)


def _is_expired(session: BlackjackSession) -> bool:
    ttl = timedelta(seconds=get_settings().blackjack_session_ttl_seconds)
    return utcnow() - session.created_at >= ttl


async def _load_active(user_id: str) -> BlackjackSession | None:
    """Current session, discarding one abandoned past the TTL (its stake stays lost)."""
    session = await BlackjackSession.find_one(BlackjackSession.user_id == user_id)
    if session is not None and _is_expired(session):
        log.info("blackjack_session_expired", user_id=user_id, bet=session.bet)
        await session.delete()
        return None
    return session


def _view(
    action: str,
    session: BlackjackSession,
    new_balance: int,
    *,
    resolved: bool,
    net_change: int | None = None,
) -> dict[str, Any]:
    hand = session.current_hand
    if resolved:
        dealer_hand = list(session.dealer_hand)
        dealer_value = casino.hand_value(session.dealer_hand)
    else:
        dealer_hand = [session.dealer_hand[0], HIDDEN_CARD]
        dealer_value = casino.hand_value(session.dealer_hand[:1])
    out: dict[str, Any] = {
        "action": action,
        "session": None if resolved else {
            "status": session.status.value,
            "bet": session.bet,
            "current_hand_index": session.current_hand_index,
            "can_split": not session.is_split and casino.can_split(hand),
        },
        "player_hand": [c.model_dump() for c in hand],
        "player_hands": [[c.model_dump() for c in h] for h in session.player_hands] if session.is_split else None,
        "dealer_hand": [c.model_dump() for c in dealer_hand],
        "player_value": casino.hand_value(hand),
        "dealer_value": dealer_value,
        "result": session.result if resolved else None,
        "payout": session.payout if resolved else None,
        "new_balance": new_balance,
    }
    if net_change is not None:
        out["net_change"] = net_change
    return out


async def get_state(user_id: str) -> dict[str, Any]:
    """Masked view of the hand in progress, or ``{"session": None}``."""
    session = await _load_active(user_id)
    if session is None:
        return {"session": None}
    return _view("state", session, await ledger.get_balance(user_id), resolved=False)


async def _require_session(user_id: str) -> BlackjackSession:
    session = await _load_active(user_id)
    if session is None or session.status != BlackjackStatus.PLAYER_TURN:
        raise ConflictError("No active hand. Deal first.")
    return session


async def deal(user_id: str, bet: Any, rng: casino.Uniform | None = None) -> dict[str, Any]:
    rng = rng or casino.default_rng
    cfg = (await get_game_settings()).blackjack
    if isinstance(bet, bool) or not isinstance(bet, int) or bet < cfg.min_bet or bet > cfg.max_bet or bet % 2 != 0:
        raise InvalidInputError(f"Bet must be an even number between {cfg.min_bet} and {cfg.max_bet}")

    async with entity_lock(*_locks(user_id)):
        if await _load_active(user_id) is not None:
            raise ConflictError("You have an active hand. Hit or Stand first.")

        deck = casino.new_deck(rng)
        p1, d1, p2, d2 = (casino.draw_card(deck) for _ in range(4))
        session = BlackjackSession(
            user_id=user_id,
            deck=deck,
            player_hands=[[p1, p2]],
            dealer_hand=[d1, d2],
            bet=bet,
        )
        # the unique index on user_id claims the seat before any credits move
        try:
            await session.insert()
        except DuplicateKeyError as exc:
            raise ConflictError("You have an active hand. Hit or Stand first.") from exc
        try:
            _, balance = await ledger.debit(user_id, bet, "casino_blackjack", BetContext(bet=bet, action="deal"))
        except InsufficientFundsError:
            await session.delete()
            raise

        if casino.is_natural(session.current_hand):
            await session.delete()
            session.status = BlackjackStatus.RESOLVED
            if casino.is_natural(session.dealer_hand):
                session.result, session.payout = "push", bet
                _, balance = await ledger.credit(
                    user_id, bet, "casino_blackjack_push", BetContext(bet=bet, result="push", payout=bet)
                )
            else:
                payout = casino.natural_payout(bet, cfg.blackjack_payout)
                session.result, session.payout = "win", payout
                _, balance = await ledger.credit(
                    user_id, payout, "casino_blackjack_win", BetContext(bet=bet, result="win", payout=payout)
                )
            log.info("blackjack_resolved", user_id=user_id, bet=bet, result=session.result, payout=session.payout, natural=True)
            await record_quest_progress(user_id, "casino_play")
            return _view("deal", session, balance, resolved=True, net_change=session.payout - bet)
    log.info("blackjack_dealt", user_id=user_id, bet=bet)
    return _view("deal", session, balance, resolved=False)


async def _advance_or_finish(action: str, user_id: str, session: BlackjackSession) -> dict[str, Any]:
    """Move to the next split hand, or play the dealer and settle every hand."""
    if session.current_hand_index < len(session.player_hands) - 1:
        session.current_hand_index += 1
        await session.save()
        return _view(action, session, await ledger.get_balance(user_id), resolved=False)

    session.status = BlackjackStatus.DEALER_TURN
    hands_alive = any(casino.hand_value(h) <= casino.BLACKJACK for h in session.player_hands)
    dealer_value = casino.hand_value(session.dealer_hand)
    if hands_alive:
        dealer_value = casino.play_dealer(session.dealer_hand, session.deck)

    total_payout = 0
    for hand in session.player_hands:
        result, returned = casino.settle_hand(casino.hand_value(hand), dealer_value, session.bet)
        if result == "win":
            await ledger.credit(
                user_id, returned, "casino_blackjack_win",
                BetContext(bet=session.bet, result=result, payout=returned),
            )
        elif result == "push":
            await ledger.credit(
                user_id, returned, "casino_blackjack_push",
                BetContext(bet=session.bet, result=result, payout=returned),
            )
        total_payout += returned

    total_bet = session.bet * len(session.player_hands)
    net_change = total_payout - total_bet
    session.status = BlackjackStatus.RESOLVED
    session.result = "win" if net_change > 0 else "loss" if net_change < 0 else "push"
    session.payout = total_payout
    await session.delete()
    log.info(
        "blackjack_resolved",
        user_id=user_id,
        bet=total_bet,
        result=session.result,
        payout=total_payout,
        dealer_value=dealer_value,
    )
    await record_quest_progress(user_id, "casino_play")
    return _view(action, session, await ledger.get_balance(user_id), resolved=True, net_change=net_change)


async def hit(user_id: str) -> dict[str, Any]:
    async with entity_lock(*_locks(user_id)):
        session = await _require_session(user_id)
        session.current_hand.append(casino.draw_card(session.deck))
        if casino.hand_value(session.current_hand) > casino.BLACKJACK:
            return await _advance_or_finish("hit", user_id, session)
        await session.save()
        return _view("hit", session, await ledger.get_balance(user_id), resolved=False)


async def stand(user_id: str) -> dict[str, Any]:
    async with entity_lock(*_locks(user_id)):
        session = await _require_session(user_id)
        return await _advance_or_finish("stand", user_id, session)


async def split(user_id: str) -> dict[str, Any]:
    """Split the opening pair into two hands, staking a second equal bet."""
    async with entity_lock(*_locks(user_id)):
        session = await _require_session(user_id)
        if session.is_split or not casino.can_split(session.current_hand):
            raise ConflictError("Can only split a pair on the initial two-card hand.")
        await ledger.debit(
            user_id, session.bet, "casino_blackjack", BetContext(bet=session.bet, action="split")
        )
        first, second = session.current_hand
        session.player_hands = [
            [first, casino.draw_card(session.deck)],
            [second, casino.draw_card(session.deck)],
        ]
        session.current_hand_index = 0
        await session.save()
        log.info("blackjack_split", user_id=user_id, bet=session.bet)
        return _view("split", session, await ledger.get_balance(user_id), resolved=False)


async def play(user_id: str, action: str, bet: Any = None, rng: casino.Uniform | None = None) -> dict[str, Any]:
    if action not in ACTIONS:
        raise InvalidInputError(f"action must be one of: {', '.join(ACTIONS)}")
    if action == "deal":
        return await deal(user_id, bet, rng=rng)
    if action == "hit":
        return await hit(user_id)
    if action == "stand":
        return await stand(user_id)
    return await split(user_id)


"""
Casino outcome engines: pure functions from a uniform [0, 1) source to outcomes.

Every engine takes ``rng`` (a zero-argument callable returning a float in
[0, 1)) so tests can script the draws; the mapping from draws to outcomes does
not depend on where the numbers come from.
"""

import random
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence, TypeVar

from movieclub.models.blackjack_session import PlayingCard
from movieclub.models.game_settings import SCRATCH_SYMBOLS, SLOT_SYMBOLS

Uniform = Callable[[], float]
T = TypeVar("T")

default_rng: Uniform = random.random


@dataclass(frozen=True)
class Payout:
    """``won`` is the match outcome; ``amount`` may floor to 0 on a small bet."""
    amount: int
    won: bool


NO_WIN = Payout(amount=0, won=False)


def randbelow(n: int, rng: Uniform) -> int:
    # clamp guards a misbehaving source that returns 1.0
    return min(int(rng() * n), n - 1)


def pick(seq: Sequence[T], rng: Uniform) -> T:
    return seq[randbelow(len(seq), rng)]


def shuffle(items: Sequence[T], rng: Uniform) -> list[T]:
    """Fisher-Yates; returns a new list."""
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = randbelow(i + 1, rng)
        out[i], out[j] = out[j], out[i]
    return out


# --- Slots ---


def spin_slots(rng: Uniform, symbols: Sequence[str] = SLOT_SYMBOLS) -> list[str]:
    return [pick(symbols, rng) for _ in range(3)]


def slots_payout(
    reels: Sequence[str],
    bet: int,
    paytable: Mapping[str, float],
    paytable_2oak: float,
) -> Payout:
    a, b, c = reels
    if a == b == c:
        return Payout(amount=int(bet * paytable.get(a, 0)), won=True)
    if a == b or b == c or a == c:
        return Payout(amount=int(bet * paytable_2oak), won=True)
    return NO_WIN


# --- Roulette (European, single zero) ---

RED_NUMBERS = frozenset({1, 3, 5, 7, 9, 12, 14, 16, 18, 19, 21, 23, 25, 27, 30, 32, 34, 36})


def spin_roulette(rng: Uniform) -> int:
    return randbelow(37, rng)


def is_red(n: int) -> bool:
    return n in RED_NUMBERS


def roulette_color(n: int) -> str:
    if n == 0:
        return "green"
    return "red" if is_red(n) else "black"


def roulette_payout(
    selection: str | int,
    result: int,
    bet: int,
    color_payout: float,
    straight_payout: float,
) -> Payout:
    if isinstance(selection, int):
        if selection == result:
            return Payout(amount=int(bet * straight_payout), won=True)
        return NO_WIN
    if result == 0:
        return NO_WIN
    if selection == roulette_color(result):
        return Payout(amount=int(bet * color_payout), won=True)
    return NO_WIN


# --- Scratch-off ---

PANEL_COUNT = 12
WINNING_COPIES = 3


def scratch_off_panels(
    win_chance_denom: Mapping[str, int],
    rng: Uniform,
    symbols: Sequence[str] = SCRATCH_SYMBOLS,
) -> list[str]:
    """
    One uniform draw decides win or loss. A draw inside the combined win mass
    (sum of 1/N per symbol) picks the winning symbol by its own 1/N share and
    lays out 3 of it plus 9 random fillers. Otherwise every symbol appears
    exactly twice, so no symbol reaches 3. The loss layout only fills 12
    panels when there are exactly 6 symbols.
    """
    shares = [(s, 1 / win_chance_denom[s]) for s in symbols if win_chance_denom.get(s, 0) >= 1]
    total = sum(p for _, p in shares)
    r = rng()
    if r < total:
        acc = 0.0
        winner = shares[-1][0]
        for symbol, p in shares:
            acc += p
            if r < acc:
                winner = symbol
                break
        panels = [winner] * WINNING_COPIES
        panels += [pick(symbols, rng) for _ in range(PANEL_COUNT - WINNING_COPIES)]
        return shuffle(panels, rng)
    panels = [s for s in symbols for _ in range(2)]
    return shuffle(panels, rng)


def scratch_off_payout(panels: Sequence[str], cost: int, paytable: Mapping[str, float]) -> Payout:
    counts: dict[str, int] = {}
    for p in panels:
        counts[p] = counts.get(p, 0) + 1
    best: Payout = NO_WIN
    for symbol, n in counts.items():
        if n >= WINNING_COPIES:
            amount = int(cost * paytable.get(symbol, 0))
            if not best.won or amount > best.amount:
                best = Payout(amount=amount, won=True)
    return best


# --- Blackjack ---

SUITS = ("♠", "♥", "♦", "♣")
RANKS = ("A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K")
DEALER_STANDS_AT = 17
BLACKJACK = 21


def new_deck(rng: Uniform) -> list[PlayingCard]:
    deck = [PlayingCard(suit=s, rank=r) for s in SUITS for r in RANKS]
    return shuffle(deck, rng)


def card_value(rank: str) -> int:
    if rank == "A":
        return 11
    if rank in ("K", "Q", "J"):
        return 10
    return int(rank)


def hand_value(cards: Sequence[PlayingCard]) -> int:
    """Aces count 11, dropping to 1 one at a time while the total is over 21."""
    total = 0
    aces = 0
    for c in cards:
        total += card_value(c.rank)
        if c.rank == "A":
            aces += 1
    while total > BLACKJACK and aces > 0:
        total -= 10
        aces -= 1
    return total


def is_natural(cards: Sequence[PlayingCard]) -> bool:
    return len(cards) == 2 and hand_value(cards) == BLACKJACK


def split_rank(rank: str) -> str:
    return "10" if rank in ("10", "J", "Q", "K") else rank


def can_split(hand: Sequence[PlayingCard]) -> bool:
    return len(hand) == 2 and split_rank(hand[0].rank) == split_rank(hand[1].rank)


def draw_card(deck: list[PlayingCard]) -> PlayingCard:
    if not deck:
        raise RuntimeError("Deck empty")
    return deck.pop(0)


def play_dealer(dealer_hand: list[PlayingCard], deck: list[PlayingCard]) -> int:
    """Dealer hits below 17 and stands on 17 or more. Mutates both lists; returns the final total."""
    value = hand_value(dealer_hand)
    while value < DEALER_STANDS_AT:
        dealer_hand.append(draw_card(deck))
        value = hand_value(dealer_hand)
    return value


def settle_hand(player_value: int, dealer_value: int, bet: int) -> tuple[str, int]:
    """Return (result, amount returned to the player) for one finished hand."""
    if player_value > BLACKJACK:
        return "loss", 0
    if dealer_value > BLACKJACK or player_value > dealer_value:
        return "win", bet * 2
    if player_value < dealer_value:
        return "loss", 0
    return "push", bet


def natural_payout(bet: int, blackjack_payout: float) -> int:
    return int(bet * (1 + blackjack_payout))


# --- Two-sided odds market ---


def implied_probability_a(odds_a: float, odds_b: float) -> float:
    p_a = 1 / odds_a
    p_b = 1 / odds_b
    return p_a / (p_a + p_b)


def resolve_two_sided(odds_a: float, odds_b: float, rng: Uniform) -> str:
    return "A" if rng() < implied_probability_a(odds_a, odds_b) else "B"


# --- Lottery ---


def draw_lottery_winner(tickets: Sequence[T], rng: Uniform) -> T | None:
    """Uniform over the ticket multiset, so each holder's chance is proportional to tickets held."""
    if not tickets:
        return None
    return pick(tickets, rng)

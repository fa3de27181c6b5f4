"""
Suit-symmetry reduction.

Relabelling suits never changes a hand's outcome distribution, so the
2,598,960 hands fall into roughly 134K classes under the 24 suit
permutations. The generator solves one representative per class and
maps the solved masks back onto each dealt hand.
"""

import itertools
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from poker_mechanics.card import SUIT_ORDER, Card
from poker_mechanics.hold_mask import position_bit, remap_mask

SUIT_PERMUTATIONS: Tuple[Tuple[int, ...], ...] = tuple(itertools.permutations(range(4)))

CanonicalKey = Tuple[Tuple[int, int], ...]


@dataclass(frozen=True)
class Canonicalization:
    """Canonical representative of a hand plus the way back to the dealt order."""

    key: CanonicalKey
    canonical_hand: Tuple[Card, ...]
    # original_positions[j] is the dealt position of canonical card j.
    original_positions: Tuple[int, ...]

    def remap_mask(self, canonical_mask: int) -> int:
        """Translate a mask over the canonical hand into the dealt order."""
        return remap_canonical_mask(canonical_mask, self.original_positions)


def canonicalize(cards: Sequence[Card]) -> Canonicalization:
    """
    Reduce a hand to its suit-permutation class.

    Every permutation relabels the suits; the relabelled cards are sorted by
    (rank, suit, dealt position) and the permutation producing the smallest
    (rank, suit) sequence wins. Ties keep the first permutation found.
    """
    best_key = None
    best_entries: List[Tuple[int, int, int]] = []
    for permutation in SUIT_PERMUTATIONS:
        entries = sorted(
            (card.rank, permutation[card.suit.index], position)
            for position, card in enumerate(cards)
        )
        key = tuple((rank, suit) for rank, suit, _ in entries)
        if best_key is None or key < best_key:
            best_key = key
            best_entries = entries

    canonical_hand = tuple(Card(SUIT_ORDER[suit], rank) for rank, suit, _ in best_entries)
    original_positions = tuple(position for _, _, position in best_entries)
    return Canonicalization(best_key, canonical_hand, original_positions)


def remap_canonical_mask(canonical_mask: int, original_positions: Sequence[int]) -> int:
    return remap_mask(canonical_mask, original_positions)


def canonical_hold_key(cards: Sequence[Card], mask: int) -> Tuple[CanonicalKey, CanonicalKey]:
    """
    Suit-symmetry class of a (held, discarded) split.

    Two holds with the same key see identical draw distributions: the
    draws depend only on the held cards and on which cards left the deck.
    """
    held = [card for position, card in enumerate(cards) if mask & position_bit(position)]
    discarded = [card for position, card in enumerate(cards) if not mask & position_bit(position)]

    best = None
    for permutation in SUIT_PERMUTATIONS:
        key = (
            tuple(sorted((card.rank, permutation[card.suit.index]) for card in held)),
            tuple(sorted((card.rank, permutation[card.suit.index]) for card in discarded)),
        )
        if best is None or key < best:
            best = key
    return best


def cards_from_key(key: CanonicalKey) -> List[Card]:
    return [Card(SUIT_ORDER[suit], rank) for rank, suit in key]

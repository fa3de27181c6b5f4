"""
Jacks-or-Better hand classification.

Two implementations that must agree on every input:
- classify: readable reference over Card objects
- classify_batch: numpy version over deck indices, used by table builds
  and brute-force enumeration where millions of hands are scored at once
"""

from collections import Counter
from typing import Sequence

import numpy as np

from poker_mechanics.card import ACE, JACK, Card
from poker_mechanics.errors import InvalidHandSizeError
from poker_mechanics.outcome import OutcomeCategory

ROYAL_RANKS = [10, 11, 12, 13, 14]
WHEEL_RANKS = [2, 3, 4, 5, ACE]


def is_straight(sorted_ranks: Sequence[int]) -> bool:
    """Five distinct consecutive ranks, with A-2-3-4-5 counted as a straight."""
    if len(set(sorted_ranks)) != 5:
        return False
    if list(sorted_ranks) == WHEEL_RANKS:
        return True
    return sorted_ranks[-1] - sorted_ranks[0] == 4


def classify(cards: Sequence[Card]) -> OutcomeCategory:
    """Classify five distinct cards into their outcome category."""
    distinct = set(cards)
    if len(cards) != 5 or len(distinct) != 5:
        raise InvalidHandSizeError(len(distinct))

    ranks = sorted(card.rank for card in cards)
    is_flush = len({card.suit for card in cards}) == 1
    straight = is_straight(ranks)

    if is_flush and straight:
        if ranks == ROYAL_RANKS:
            return OutcomeCategory.ROYAL_FLUSH
        return OutcomeCategory.STRAIGHT_FLUSH

    rank_counts = Counter(ranks)
    shape = sorted(rank_counts.values(), reverse=True)

    if shape[0] == 4:
        return OutcomeCategory.FOUR_OF_A_KIND
    if shape == [3, 2]:
        return OutcomeCategory.FULL_HOUSE
    if is_flush:
        return OutcomeCategory.FLUSH
    if straight:
        return OutcomeCategory.STRAIGHT
    if shape[0] == 3:
        return OutcomeCategory.THREE_OF_A_KIND
    if shape == [2, 2, 1]:
        return OutcomeCategory.TWO_PAIR
    if shape[0] == 2:
        pair_rank = next(rank for rank, count in rank_counts.items() if count == 2)
        if pair_rank >= JACK:
            return OutcomeCategory.JACKS_OR_BETTER
    return OutcomeCategory.NO_PAY


# ------------ Vectorized classifier ------------

# Rank-multiset shapes, keyed by which adjacent pairs of sorted ranks are equal.
_SHAPE_NONE, _SHAPE_PAIR, _SHAPE_TWO_PAIR, _SHAPE_TRIPS, _SHAPE_FULL, _SHAPE_QUADS = range(6)
_EQUALITY_WEIGHTS = np.array([8, 4, 2, 1], dtype=np.uint8)

_PATTERN_SHAPE = np.full(16, _SHAPE_NONE, dtype=np.uint8)
for _pattern in (8, 4, 2, 1):
    _PATTERN_SHAPE[_pattern] = _SHAPE_PAIR
for _pattern in (10, 9, 5):
    _PATTERN_SHAPE[_pattern] = _SHAPE_TWO_PAIR
for _pattern in (12, 6, 3):
    _PATTERN_SHAPE[_pattern] = _SHAPE_TRIPS
for _pattern in (13, 11):
    _PATTERN_SHAPE[_pattern] = _SHAPE_FULL
for _pattern in (14, 7):
    _PATTERN_SHAPE[_pattern] = _SHAPE_QUADS

# Rank offsets (rank - 2) of the wheel and of the ten/jack boundaries.
_WHEEL_OFFSETS = np.array([0, 1, 2, 3, 12], dtype=np.uint8)
_TEN_OFFSET = 10 - 2
_JACK_OFFSET = JACK - 2


def classify_batch(hands: np.ndarray) -> np.ndarray:
    """
    Classify many hands given as deck indices.

    Args:
        hands: integer array of shape (N, 5); each row holds five distinct
            deck indices in any order

    Returns:
        uint8 array of shape (N,) holding OutcomeCategory values
    """
    hands = np.asarray(hands)
    if hands.ndim != 2 or hands.shape[1] != 5:
        raise ValueError(f"Expected an (N, 5) array of deck indices, got shape {hands.shape}")
    if hands.shape[0] == 0:
        return np.empty(0, dtype=np.uint8)

    suits = hands // 13
    ranks = np.sort(hands % 13, axis=1).astype(np.uint8)

    flush = (suits == suits[:, :1]).all(axis=1)
    equal = ranks[:, 1:] == ranks[:, :-1]
    shape = _PATTERN_SHAPE[equal.astype(np.uint8) @ _EQUALITY_WEIGHTS]

    distinct = shape == _SHAPE_NONE
    wheel = (ranks == _WHEEL_OFFSETS).all(axis=1)
    straight = distinct & ((ranks[:, 4] - ranks[:, 0] == 4) | wheel)
    straight_flush = straight & flush
    royal = straight_flush & (ranks[:, 0] == _TEN_OFFSET)

    pair_rank = ranks[np.arange(len(ranks)), np.argmax(equal, axis=1)]
    high_pair = (shape == _SHAPE_PAIR) & (pair_rank >= _JACK_OFFSET)

    conditions = [
        royal,
        straight_flush,
        shape == _SHAPE_QUADS,
        shape == _SHAPE_FULL,
        flush,
        straight,
        shape == _SHAPE_TRIPS,
        shape == _SHAPE_TWO_PAIR,
        high_pair,
    ]
    choices = [int(category) for category in OutcomeCategory if category.is_winning]
    return np.select(conditions, choices, default=int(OutcomeCategory.NO_PAY)).astype(np.uint8)

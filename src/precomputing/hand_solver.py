"""
Exact solving of all 32 holds of a hand from the subset aggregate table.

This module is used by the generator (one solve per canonical class) and
by the engine's aggregate resolver when it needs every mask at once.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from poker_mechanics.outcome import NUM_WINNING_CATEGORIES
from poker_mechanics.paytable import REFERENCE_BET_MULTIPLIER, REFERENCE_PAYTABLE, Paytable
from precomputing.subset_aggregate import DRAW_COMBINATIONS, SubsetAggregateTable


@dataclass
class HoldSolution:
    """Best hold of one hand, in the card order the hand was solved in."""
    hold_mask: int
    expected_value: float
    outcome_counts: np.ndarray

    @property
    def winning_frequencies(self) -> np.ndarray:
        return self.outcome_counts[:NUM_WINNING_CATEGORIES]


def expected_values(counts: np.ndarray, paytable: Paytable, bet_multiplier: float) -> np.ndarray:
    """EV of every mask from a (32, 10) outcome count array."""
    payout = counts[:, :NUM_WINNING_CATEGORIES].astype(np.float64) @ paytable.winning_payouts
    return payout * bet_multiplier / DRAW_COMBINATIONS


def best_mask(values: np.ndarray) -> int:
    """First mask, in ascending order, reaching the maximum EV."""
    return int(np.argmax(values))


class HandSolver:
    """Solves hands against one paytable using inclusion-exclusion lookups."""

    def __init__(
        self,
        aggregate: SubsetAggregateTable,
        paytable: Paytable = REFERENCE_PAYTABLE,
        bet_multiplier: float = REFERENCE_BET_MULTIPLIER,
    ):
        self.aggregate = aggregate
        self.paytable = paytable
        self.bet_multiplier = bet_multiplier

    def outcome_counts(self, hand_indices: Sequence[int]) -> np.ndarray:
        return self.aggregate.hold_counts_matrix(hand_indices)

    def expected_values(self, hand_indices: Sequence[int]) -> np.ndarray:
        return expected_values(self.outcome_counts(hand_indices), self.paytable, self.bet_multiplier)

    def solve(self, hand_indices: Sequence[int]) -> HoldSolution:
        counts = self.outcome_counts(hand_indices)
        values = expected_values(counts, self.paytable, self.bet_multiplier)
        mask = best_mask(values)
        return HoldSolution(mask, float(values[mask]), counts[mask])

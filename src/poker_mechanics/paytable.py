import logging
from dataclasses import dataclass
from typing import List, Mapping, Tuple

import numpy as np

from poker_mechanics.outcome import NUM_CATEGORIES, OutcomeCategory

logger = logging.getLogger(__name__)

MAX_COINS = 5


class InvalidPaytableError(ValueError):
    """A payout schedule violated its invariants."""


@dataclass(frozen=True)
class Paytable:
    """Immutable per-coin payout schedule for Jacks or Better."""

    paytable_id: str
    display_name: str
    payouts: Tuple[int, ...]

    def __post_init__(self):
        if len(self.payouts) != NUM_CATEGORIES:
            raise InvalidPaytableError(
                f"{self.paytable_id}: expected {NUM_CATEGORIES} payouts, got {len(self.payouts)}"
            )
        if any(p < 0 for p in self.payouts):
            raise InvalidPaytableError(f"{self.paytable_id}: payouts must be non-negative")
        if self.payouts[OutcomeCategory.NO_PAY] != 0:
            raise InvalidPaytableError(f"{self.paytable_id}: No Pay must pay 0")

    @classmethod
    def from_mapping(
        cls,
        paytable_id: str,
        display_name: str,
        payouts: Mapping[OutcomeCategory, int],
    ) -> "Paytable":
        """Build a paytable from a category mapping; missing categories pay 0."""
        for required in (OutcomeCategory.ROYAL_FLUSH, OutcomeCategory.JACKS_OR_BETTER):
            if required not in payouts:
                raise InvalidPaytableError(f"{paytable_id}: missing payout for {required.display_name}")
        values = tuple(int(payouts.get(category, 0)) for category in OutcomeCategory)
        return cls(paytable_id, display_name, values)

    def payout(self, category: OutcomeCategory) -> int:
        return self.payouts[category]

    @property
    def payout_vector(self) -> np.ndarray:
        """Payouts as float64, indexed by category (length 10)."""
        return np.asarray(self.payouts, dtype=np.float64)

    @property
    def winning_payouts(self) -> np.ndarray:
        """Payouts of the nine winning categories, for dot products with count vectors."""
        return self.payout_vector[:-1]

    def payouts_for_coins(self, category: OutcomeCategory) -> List[int]:
        """Payout column for 1..5 coins, including the max-coin royal bonus."""
        per_coin = self.payouts[category]
        column = [per_coin * coins for coins in range(1, MAX_COINS + 1)]
        if category is OutcomeCategory.ROYAL_FLUSH:
            if per_coin >= 800:
                column[-1] = 4000
            elif per_coin >= 500:
                column[-1] = 2500
        return column


def _jacks_or_better(paytable_id: str, display_name: str, royal: int, full_house: int, flush: int) -> Paytable:
    return Paytable.from_mapping(
        paytable_id,
        display_name,
        {
            OutcomeCategory.ROYAL_FLUSH: royal,
            OutcomeCategory.STRAIGHT_FLUSH: 50,
            OutcomeCategory.FOUR_OF_A_KIND: 25,
            OutcomeCategory.FULL_HOUSE: full_house,
            OutcomeCategory.FLUSH: flush,
            OutcomeCategory.STRAIGHT: 4,
            OutcomeCategory.THREE_OF_A_KIND: 3,
            OutcomeCategory.TWO_PAIR: 2,
            OutcomeCategory.JACKS_OR_BETTER: 1,
            OutcomeCategory.NO_PAY: 0,
        },
    )


FULL_PAY_9_6 = _jacks_or_better("job_9_6_800", "9/6 (Full Pay, 99.54%)", 800, 9, 6)
NINE_SIX_500 = _jacks_or_better("job_9_6_500", "9/6 (98.88%)", 500, 9, 6)
NINE_FIVE = _jacks_or_better("job_9_5", "9/5 (98.45%)", 800, 9, 5)
EIGHT_SIX = _jacks_or_better("job_8_6", "8/6 (98.39%)", 800, 8, 6)
EIGHT_FIVE = _jacks_or_better("job_8_5", "8/5 (97.30%)", 800, 8, 5)
SEVEN_FIVE = _jacks_or_better("job_7_5", "7/5 (96.15%)", 800, 7, 5)
SIX_FIVE = _jacks_or_better("job_6_5", "6/5 (95.00%)", 800, 6, 5)

ALL_PAYTABLES: Tuple[Paytable, ...] = (
    FULL_PAY_9_6,
    NINE_SIX_500,
    NINE_FIVE,
    EIGHT_SIX,
    EIGHT_FIVE,
    SEVEN_FIVE,
    SIX_FIVE,
)

DEFAULT_PAYTABLE = FULL_PAY_9_6

# Strategy tables are generated against this schedule at a 5-coin bet.
REFERENCE_PAYTABLE = NINE_FIVE
REFERENCE_BET_MULTIPLIER = 5


def paytable_by_id(paytable_id: str) -> Paytable:
    """Look up a built-in paytable; unknown ids fall back to the default."""
    for paytable in ALL_PAYTABLES:
        if paytable.paytable_id == paytable_id:
            return paytable
    logger.warning("Unknown paytable id %r, using %s", paytable_id, DEFAULT_PAYTABLE.paytable_id)
    return DEFAULT_PAYTABLE

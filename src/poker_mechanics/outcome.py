from enum import IntEnum
from typing import Tuple


class OutcomeCategory(IntEnum):
    """Jacks-or-Better hand ranks, best first. The value is the vector slot."""

    ROYAL_FLUSH = 0
    STRAIGHT_FLUSH = 1
    FOUR_OF_A_KIND = 2
    FULL_HOUSE = 3
    FLUSH = 4
    STRAIGHT = 5
    THREE_OF_A_KIND = 6
    TWO_PAIR = 7
    JACKS_OR_BETTER = 8
    NO_PAY = 9

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def is_winning(self) -> bool:
        return self is not OutcomeCategory.NO_PAY


_DISPLAY_NAMES = {
    OutcomeCategory.ROYAL_FLUSH: "Royal Flush",
    OutcomeCategory.STRAIGHT_FLUSH: "Straight Flush",
    OutcomeCategory.FOUR_OF_A_KIND: "Four of a Kind",
    OutcomeCategory.FULL_HOUSE: "Full House",
    OutcomeCategory.FLUSH: "Flush",
    OutcomeCategory.STRAIGHT: "Straight",
    OutcomeCategory.THREE_OF_A_KIND: "Three of a Kind",
    OutcomeCategory.TWO_PAIR: "Two Pair",
    OutcomeCategory.JACKS_OR_BETTER: "Jacks or Better",
    OutcomeCategory.NO_PAY: "No Pay",
}

WINNING_CATEGORIES: Tuple[OutcomeCategory, ...] = tuple(c for c in OutcomeCategory if c.is_winning)
NUM_WINNING_CATEGORIES = len(WINNING_CATEGORIES)
NUM_CATEGORIES = len(OutcomeCategory)

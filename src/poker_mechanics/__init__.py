from .card import Card, Suit, FULL_DECK, parse_hand
from .errors import InvalidHandSizeError, InvalidHoldCombinationError, VideoPokerError
from .hand_evaluator import classify, classify_batch
from .hold_mask import hold_to_mask, mask_to_hold
from .outcome import OutcomeCategory
from .paytable import DEFAULT_PAYTABLE, REFERENCE_PAYTABLE, Paytable, paytable_by_id

__all__ = [
    "Card",
    "Suit",
    "FULL_DECK",
    "parse_hand",
    "InvalidHandSizeError",
    "InvalidHoldCombinationError",
    "VideoPokerError",
    "classify",
    "classify_batch",
    "hold_to_mask",
    "mask_to_hold",
    "OutcomeCategory",
    "DEFAULT_PAYTABLE",
    "REFERENCE_PAYTABLE",
    "Paytable",
    "paytable_by_id",
]

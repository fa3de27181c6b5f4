"""
Hold masks: a 5-bit selector of the dealt cards kept before the draw.

Card position i (0 = first card dealt) is held when bit (4 - i) is set, so
mask 16 keeps only the first card and mask 31 keeps the whole hand.
"""

import numbers
from typing import List, Sequence, Tuple

import numpy as np

from poker_mechanics.errors import InvalidHoldCombinationError

NUM_MASKS = 32
DISCARD_ALL_MASK = 0
HOLD_ALL_MASK = 31


def position_bit(position: int) -> int:
    return 1 << (4 - position)


def hold_to_mask(hold: Sequence[bool]) -> int:
    """Convert five booleans into a hold mask."""
    if len(hold) != 5:
        raise InvalidHoldCombinationError(f"A hold must have exactly 5 entries, got {len(hold)}")
    mask = 0
    for position, held in enumerate(hold):
        if held:
            mask |= position_bit(position)
    return mask


def mask_to_hold(mask: int) -> Tuple[bool, ...]:
    """Convert a hold mask back into five booleans."""
    if not 0 <= mask < NUM_MASKS:
        raise InvalidHoldCombinationError(f"Hold mask must be in 0..31, got {mask}")
    return tuple(bool(mask & position_bit(position)) for position in range(5))


def held_positions(mask: int) -> List[int]:
    return [position for position in range(5) if mask & position_bit(position)]


def discarded_positions(mask: int) -> List[int]:
    return [position for position in range(5) if not mask & position_bit(position)]


def remap_mask(mask: int, position_map: Sequence[int]) -> int:
    """
    Translate a mask over a reordered hand into the dealt order.

    position_map[j] is the dealt position of the card at position j of the
    reordered hand.
    """
    remapped = 0
    for position in held_positions(mask):
        remapped |= position_bit(position_map[position])
    return remapped


def invert_position_map(position_map: Sequence[int]) -> List[int]:
    inverse = [0] * len(position_map)
    for ordered_position, dealt_position in enumerate(position_map):
        inverse[dealt_position] = ordered_position
    return inverse


def coerce_mask(hold) -> int:
    """Accept either a mask integer or a sequence of five booleans."""
    if isinstance(hold, bool):
        raise InvalidHoldCombinationError("A hold must be a mask or five booleans")
    if isinstance(hold, numbers.Integral):
        mask_to_hold(int(hold))
        return int(hold)
    if isinstance(hold, (str, bytes)):
        raise InvalidHoldCombinationError(f"Unsupported hold value: {hold!r}")
    try:
        values = list(hold)
    except TypeError:
        raise InvalidHoldCombinationError(f"Unsupported hold value: {hold!r}") from None
    if not all(isinstance(value, (bool, np.bool_)) for value in values):
        raise InvalidHoldCombinationError(f"A hold sequence must contain booleans, got {values!r}")
    return hold_to_mask(values)

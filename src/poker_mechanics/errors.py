class VideoPokerError(Exception):
    """Base class for all errors raised by the EV engine and table tooling."""


class InvalidHandSizeError(VideoPokerError, ValueError):
    """A hand did not contain exactly five distinct cards."""

    def __init__(self, size: int):
        super().__init__(f"A hand must contain exactly 5 distinct cards, got {size}")
        self.size = size


class InvalidHoldCombinationError(VideoPokerError, ValueError):
    """A hold was not five booleans (or a mask in 0..31)."""

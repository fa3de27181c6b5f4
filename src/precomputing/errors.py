from poker_mechanics.errors import VideoPokerError


class TableLoadError(VideoPokerError):
    """A binary table file is missing, undersized or malformed."""


class BaselineViolationError(VideoPokerError):
    """A computed optimum fell below the hand's discard-all expected value."""


class GeneratorError(VideoPokerError):
    """Lookup table generation failed."""


class GeneratorIOError(GeneratorError):
    """Output or checkpoint I/O failed during generation."""


class CheckpointError(GeneratorIOError):
    """A checkpoint file could not be read or written."""

"""
Subset aggregate table: paytable-agnostic winning counts for every card subset.

For each subset S of the deck with |S| = k (k = 0..5) the table stores, per
winning category, how many of the C(52, 5) hands contain S and classify into
that category. The exact draw distribution of any hold then follows from at
most 32 lookups by inclusion-exclusion over the discarded cards.

File format (little-endian):
- magic b"VPAGG1\\0" (7 bytes), version u32 (= 1), max subset size u32 (= 5)
- for k = 0..5: subset count u32 (= C(52, k)), then count x 9 u32 values
  ordered by combinatorial rank
"""

import logging
import os
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import numpy as np

from poker_mechanics.card import DECK_SIZE, HAND_SIZE
from poker_mechanics.hand_evaluator import classify_batch
from poker_mechanics.hold_mask import NUM_MASKS, held_positions
from poker_mechanics.outcome import NUM_WINNING_CATEGORIES, OutcomeCategory
from precomputing.combinatorics import (
    MAX_K,
    enumerate_combinations,
    n_choose_k,
    rank_combination,
    rank_combinations,
)
from precomputing.errors import TableLoadError

logger = logging.getLogger(__name__)

AGGREGATE_MAGIC = b"VPAGG1\x00"
AGGREGATE_VERSION = 1
HEADER_SIZE = len(AGGREGATE_MAGIC) + 4 + 4
STUB_SIZE = DECK_SIZE - HAND_SIZE

LEVEL_SIZES = tuple(n_choose_k(DECK_SIZE, k) for k in range(MAX_K + 1))
AGGREGATE_FILE_SIZE = HEADER_SIZE + sum(4 + size * NUM_WINNING_CATEGORIES * 4 for size in LEVEL_SIZES)


def _build_sign_matrix() -> np.ndarray:
    # Row: hold mask. Column: subset of hand positions (same bit orientation).
    matrix = np.zeros((NUM_MASKS, NUM_MASKS), dtype=np.int64)
    for mask in range(NUM_MASKS):
        for subset in range(NUM_MASKS):
            if subset & mask == mask:
                extra = bin(subset & ~mask).count("1")
                matrix[mask, subset] = -1 if extra % 2 else 1
    return matrix


SIGN_MATRIX = _build_sign_matrix()
SUBSET_POSITIONS = tuple(tuple(held_positions(subset)) for subset in range(NUM_MASKS))
DRAW_COMBINATIONS = np.array(
    [n_choose_k(STUB_SIZE, HAND_SIZE - len(SUBSET_POSITIONS[mask])) for mask in range(NUM_MASKS)],
    dtype=np.int64,
)


def finish_counts(signed_wins: np.ndarray, draw_count: np.ndarray) -> np.ndarray:
    """
    Clamp signed winning counts and append the No Pay column.

    Works on a single (9,) vector or a stacked (M, 9) array.
    """
    wins = np.maximum(np.asarray(signed_wins, dtype=np.int64), 0)
    no_pay = np.maximum(draw_count - wins.sum(axis=-1), 0)
    return np.concatenate([wins, np.expand_dims(no_pay, -1)], axis=-1)


class SubsetAggregateTable:
    """Read-only winning counts for every subset of size 0..5."""

    def __init__(self, levels: Sequence[np.ndarray]):
        if len(levels) != MAX_K + 1:
            raise ValueError(f"Expected {MAX_K + 1} levels, got {len(levels)}")
        for k, level in enumerate(levels):
            if level.shape != (LEVEL_SIZES[k], NUM_WINNING_CATEGORIES):
                raise ValueError(f"Level {k} has shape {level.shape}")
        self._levels = list(levels)

    @property
    def levels(self) -> List[np.ndarray]:
        return self._levels

    # ------------ Build ------------

    @classmethod
    def build(cls, progress_callback: Optional[Callable[[int, int], None]] = None) -> "SubsetAggregateTable":
        """Enumerate all C(52, 5) hands and tally every subset of every winning hand."""
        hands = enumerate_combinations(DECK_SIZE, HAND_SIZE)
        categories = classify_batch(hands)
        winning_rows = np.flatnonzero(categories != OutcomeCategory.NO_PAY)
        winning_hands = hands[winning_rows]
        winning_categories = categories[winning_rows].astype(np.int64)
        logger.info("Classified %d hands, %d winning", len(hands), len(winning_rows))

        flat_counts = [np.zeros(size * NUM_WINNING_CATEGORIES, dtype=np.int64) for size in LEVEL_SIZES[:-1]]
        full_hands = np.zeros((LEVEL_SIZES[-1], NUM_WINNING_CATEGORIES), dtype=np.uint32)

        for step, positions in enumerate(SUBSET_POSITIONS, start=1):
            k = len(positions)
            if k == HAND_SIZE:
                # Rows of the enumeration are already in rank order.
                full_hands[winning_rows, winning_categories] = 1
            else:
                if k == 0:
                    keys = winning_categories
                else:
                    ranks = rank_combinations(winning_hands[:, list(positions)])
                    keys = ranks * NUM_WINNING_CATEGORIES + winning_categories
                flat_counts[k] += np.bincount(keys, minlength=len(flat_counts[k]))
            if progress_callback:
                progress_callback(step, NUM_MASKS)

        levels = [counts.reshape(-1, NUM_WINNING_CATEGORIES).astype(np.uint32) for counts in flat_counts]
        levels.append(full_hands)
        return cls(levels)

    # ------------ Persistence ------------

    def save(self, path: Path) -> Path:
        """Write the table atomically (temporary file, then rename)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(path.name + ".tmp")

        with open(temp_path, "wb") as handle:
            handle.write(AGGREGATE_MAGIC)
            handle.write(np.array([AGGREGATE_VERSION, MAX_K], dtype="<u4").tobytes())
            for level in self._levels:
                handle.write(np.array([len(level)], dtype="<u4").tobytes())
                np.ascontiguousarray(level, dtype="<u4").tofile(handle)
        os.replace(temp_path, path)
        logger.info("Wrote subset aggregate table to %s", path)
        return path

    @classmethod
    def load(cls, path: Path) -> "SubsetAggregateTable":
        """Memory-map a table file read-only; raises TableLoadError if it is not valid."""
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise TableLoadError(f"Cannot stat aggregate table {path}: {e}") from e
        if size < AGGREGATE_FILE_SIZE:
            raise TableLoadError(f"Aggregate table {path} is undersized: {size} < {AGGREGATE_FILE_SIZE} bytes")

        levels = []
        try:
            with open(path, "rb") as handle:
                header = handle.read(HEADER_SIZE)
                if header[: len(AGGREGATE_MAGIC)] != AGGREGATE_MAGIC:
                    raise TableLoadError(f"Bad magic in aggregate table {path}")
                version, max_k = np.frombuffer(header[len(AGGREGATE_MAGIC):], dtype="<u4")
                if version != AGGREGATE_VERSION or max_k != MAX_K:
                    raise TableLoadError(f"Unsupported aggregate table {path}: version {version}, max size {max_k}")

                offset = HEADER_SIZE
                for k in range(MAX_K + 1):
                    handle.seek(offset)
                    count = int.from_bytes(handle.read(4), "little")
                    if count != LEVEL_SIZES[k]:
                        raise TableLoadError(f"Level {k} of {path} has {count} subsets, expected {LEVEL_SIZES[k]}")
                    levels.append(
                        np.memmap(path, dtype="<u4", mode="r", offset=offset + 4, shape=(count, NUM_WINNING_CATEGORIES))
                    )
                    offset += 4 + count * NUM_WINNING_CATEGORIES * 4
        except OSError as e:
            raise TableLoadError(f"Cannot read aggregate table {path}: {e}") from e

        logger.info("Loaded subset aggregate table from %s", path)
        return cls(levels)

    # ------------ Lookups ------------

    def aggregate(self, sorted_indices: Sequence[int]) -> np.ndarray:
        """Winning counts (9,) for a strictly ascending subset of deck indices."""
        k = len(sorted_indices)
        if k > MAX_K:
            raise ValueError(f"Subsets larger than {MAX_K} cards are not stored")
        return self._levels[k][rank_combination(sorted_indices)]

    def global_distribution(self) -> np.ndarray:
        """Winning counts over all C(52, 5) hands (the empty subset)."""
        return np.asarray(self._levels[0][0], dtype=np.int64)

    def hold_counts(self, held: Sequence[int], discarded: Sequence[int]) -> np.ndarray:
        """
        Exact outcome counts (10,) over all C(47, d) draws for one hold.

        Sums (-1)^|S| * aggregate(H + S) over every subset S of the discarded
        cards, which leaves exactly the completions avoiding all of them.
        """
        held = list(held)
        discarded = list(discarded)
        if len(held) + len(discarded) != HAND_SIZE:
            raise ValueError("Held and discarded cards must make up a 5-card hand")

        signed = np.zeros(NUM_WINNING_CATEGORIES, dtype=np.int64)
        d = len(discarded)
        for subset in range(1 << d):
            chosen = [discarded[j] for j in range(d) if subset >> j & 1]
            term = self.aggregate(sorted(held + chosen)).astype(np.int64)
            if len(chosen) % 2:
                signed -= term
            else:
                signed += term
        return finish_counts(signed, n_choose_k(STUB_SIZE, d))

    def subset_aggregates(self, hand_indices: Sequence[int]) -> np.ndarray:
        """Winning counts (32, 9) for every subset of the hand's positions."""
        result = np.empty((NUM_MASKS, NUM_WINNING_CATEGORIES), dtype=np.int64)
        for subset, positions in enumerate(SUBSET_POSITIONS):
            result[subset] = self.aggregate(sorted(hand_indices[p] for p in positions))
        return result

    def hold_counts_matrix(self, hand_indices: Sequence[int]) -> np.ndarray:
        """Outcome counts (32, 10) for all hold masks, in the given card order."""
        if len(hand_indices) != HAND_SIZE:
            raise ValueError("A hand must contain exactly 5 cards")
        signed = SIGN_MATRIX @ self.subset_aggregates(hand_indices)
        return finish_counts(signed, DRAW_COMBINATIONS)

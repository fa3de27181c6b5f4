"""
Per-hand table formats and readers.

Every per-hand table holds one fixed-size record for each of the C(52, 5)
hands, addressed by the combinatorial rank of the hand's sorted deck
indices. Masks inside a record refer to the sorted card order; readers
remap them onto the order the cards were dealt in.

Record layouts (little-endian, unpadded):
- legacy:   [hold_mask u8][expected_value f32]                       5 bytes
- strategy: [hand_index u32][hold_mask u8][expected_value f32]
            [9 x u32 winning frequencies]                            45 bytes
- agnostic: [hand_index u32][32 masks x 10 outcomes u32]           1284 bytes
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np

from poker_mechanics.card import Card
from poker_mechanics.errors import InvalidHandSizeError
from poker_mechanics.hold_mask import NUM_MASKS, mask_to_hold, remap_mask
from poker_mechanics.outcome import NUM_CATEGORIES, NUM_WINNING_CATEGORIES
from precomputing.combinatorics import TOTAL_HANDS, rank_combination
from precomputing.errors import TableLoadError

logger = logging.getLogger(__name__)

LEGACY_DTYPE = np.dtype([("hold_mask", "u1"), ("expected_value", "<f4")])
STRATEGY_DTYPE = np.dtype([
    ("hand_index", "<u4"),
    ("hold_mask", "u1"),
    ("expected_value", "<f4"),
    ("winning_frequencies", "<u4", (NUM_WINNING_CATEGORIES,)),
])
AGNOSTIC_DTYPE = np.dtype([
    ("hand_index", "<u4"),
    ("outcome_counts", "<u4", (NUM_MASKS, NUM_CATEGORIES)),
])


class TableFormat(Enum):
    LEGACY = "legacy"
    STRATEGY = "strategy"
    AGNOSTIC = "agnostic"

    @property
    def dtype(self) -> np.dtype:
        return _FORMAT_DTYPES[self]

    @property
    def record_size(self) -> int:
        return self.dtype.itemsize

    @property
    def file_size(self) -> int:
        return self.record_size * TOTAL_HANDS


_FORMAT_DTYPES = {
    TableFormat.LEGACY: LEGACY_DTYPE,
    TableFormat.STRATEGY: STRATEGY_DTYPE,
    TableFormat.AGNOSTIC: AGNOSTIC_DTYPE,
}


def new_records(table_format: TableFormat, count: int) -> np.ndarray:
    return np.zeros(count, dtype=table_format.dtype)


def sort_hand(cards: Sequence[Card]) -> Tuple[Tuple[int, ...], List[int]]:
    """
    Sort a dealt hand by deck index.

    Returns the sorted indices and the position map, where position_map[j]
    is the dealt position of sorted card j.
    """
    if len(cards) != 5 or len(set(cards)) != 5:
        raise InvalidHandSizeError(len(set(cards)))
    order = sorted(range(5), key=lambda position: cards[position].deck_index)
    return tuple(cards[position].deck_index for position in order), order


@dataclass(frozen=True)
class StrategyRecord:
    """Stored optimum of one hand, already remapped to the dealt order."""
    hand_index: int
    hold_mask: int
    hold: Tuple[bool, ...]
    expected_value: float
    winning_frequencies: Optional[Tuple[int, ...]] = None


def _map_table(path: Path, candidates: Sequence[TableFormat]) -> Tuple[np.ndarray, TableFormat]:
    path = Path(path)
    try:
        size = path.stat().st_size
    except OSError as e:
        raise TableLoadError(f"Cannot stat table {path}: {e}") from e

    for table_format in candidates:
        if size >= table_format.file_size:
            try:
                records = np.memmap(path, dtype=table_format.dtype, mode="r", shape=(TOTAL_HANDS,))
            except (OSError, ValueError) as e:
                raise TableLoadError(f"Cannot map table {path}: {e}") from e
            logger.info("Loaded %s table from %s", table_format.value, path)
            return records, table_format

    smallest = min(table_format.file_size for table_format in candidates)
    raise TableLoadError(f"Table {path} is undersized: {size} < {smallest} bytes")


class StrategyTable:
    """Reader for legacy and strategy per-hand tables."""

    def __init__(self, records: np.ndarray, table_format: TableFormat):
        if table_format is TableFormat.AGNOSTIC:
            raise ValueError("Agnostic tables are read with AgnosticTable")
        self.records = records
        self.table_format = table_format

    @classmethod
    def load(cls, path: Path) -> "StrategyTable":
        """Memory-map a table; the larger strategy layout is tried before the legacy one."""
        records, table_format = _map_table(path, (TableFormat.STRATEGY, TableFormat.LEGACY))
        return cls(records, table_format)

    @property
    def has_frequencies(self) -> bool:
        return self.table_format is TableFormat.STRATEGY

    def lookup(self, cards: Sequence[Card]) -> StrategyRecord:
        sorted_indices, position_map = sort_hand(cards)
        hand_index = rank_combination(sorted_indices)
        if hand_index >= len(self.records):
            raise KeyError(f"Hand index {hand_index} is not in this table")

        record = self.records[hand_index]
        hold_mask = remap_mask(int(record["hold_mask"]), position_map)
        frequencies = None
        if self.has_frequencies:
            frequencies = tuple(int(value) for value in record["winning_frequencies"])
        return StrategyRecord(
            hand_index=hand_index,
            hold_mask=hold_mask,
            hold=mask_to_hold(hold_mask),
            expected_value=float(record["expected_value"]),
            winning_frequencies=frequencies,
        )


class AgnosticTable:
    """Reader for agnostic tables: outcome counts of every mask of every hand."""

    def __init__(self, records: np.ndarray):
        self.records = records

    @classmethod
    def load(cls, path: Path) -> "AgnosticTable":
        records, _ = _map_table(path, (TableFormat.AGNOSTIC,))
        return cls(records)

    def outcome_counts(self, cards: Sequence[Card]) -> np.ndarray:
        """Counts (32, 10) indexed by masks over the dealt order."""
        sorted_indices, position_map = sort_hand(cards)
        hand_index = rank_combination(sorted_indices)
        if hand_index >= len(self.records):
            raise KeyError(f"Hand index {hand_index} is not in this table")

        stored = np.asarray(self.records[hand_index]["outcome_counts"], dtype=np.int64)
        counts = np.empty_like(stored)
        for mask in range(NUM_MASKS):
            counts[remap_mask(mask, position_map)] = stored[mask]
        return counts

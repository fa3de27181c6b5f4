"""
Verify a generated per-hand table and summarize its contents.

Usage:
    python -m precomputing.verify_output tables/strategy_table.bin \
      --format strategy --aggregate tables/subset_aggregate.bin --sample 500 --parquet exports/
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from precomputing.combinatorics import TOTAL_HANDS, unrank_combination
from precomputing.ev_engine import evs_match
from precomputing.hand_solver import HandSolver, expected_values
from precomputing.parquet_io import (
    FREQUENCY_COLUMNS,
    ParquetWriter,
    create_build_metadata,
    records_to_dataframe,
)
from precomputing.strategy_table import TableFormat
from precomputing.subset_aggregate import SubsetAggregateTable


def read_records(path: Path, table_format: TableFormat) -> np.ndarray:
    """Map every complete record of a (possibly partial) table file."""
    size = Path(path).stat().st_size
    count = min(size // table_format.record_size, TOTAL_HANDS)
    if count == 0:
        raise ValueError(f"{path} holds no complete {table_format.value} records")
    return np.memmap(path, dtype=table_format.dtype, mode="r", shape=(count,))


def summarize(df: pd.DataFrame) -> None:
    """Print hold-size distribution, EV range and frequency totals."""
    print(f"Rows: {len(df):,}")
    print(f"Columns: {list(df.columns)}")

    print("\nHold size distribution:")
    distribution = df["hold_size"].value_counts().sort_index()
    for hold_size, count in distribution.items():
        print(f"  hold {hold_size}: {count:,} ({100.0 * count / len(df):.2f}%)")

    ev = df["expected_value"]
    print(f"\nExpected value: min={ev.min():.4f} mean={ev.mean():.4f} max={ev.max():.4f}")

    present = [column for column in FREQUENCY_COLUMNS if column in df.columns]
    if present:
        print("\nWinning frequency totals of chosen holds:")
        totals = df[present].astype(np.int64).sum()
        for column, total in totals.items():
            print(f"  {column}: {total:,}")

    print("\nSample rows:")
    print(df.head(5))


def spot_check(
    df: pd.DataFrame,
    aggregate: SubsetAggregateTable,
    sample: int,
    seed: int = 0,
) -> Tuple[int, int]:
    """
    Re-solve sampled hands from the aggregate table and compare.

    Returns (checked, mismatches).
    """
    solver = HandSolver(aggregate)
    rng = np.random.default_rng(seed)
    rows = rng.choice(len(df), size=min(sample, len(df)), replace=False)
    has_frequencies = FREQUENCY_COLUMNS[0] in df.columns

    mismatches = 0
    for row in rows:
        record = df.iloc[int(row)]
        hand_index = int(record["hand_index"])
        indices = unrank_combination(hand_index, 5)
        counts = solver.outcome_counts(indices)
        values = expected_values(counts, solver.paytable, solver.bet_multiplier)
        best = float(values.max())
        stored_mask = int(record["hold_mask"])

        # Equal-EV holds may be stored in place of the first best mask.
        ok = evs_match(float(values[stored_mask]), best)
        ok = ok and evs_match(float(record["expected_value"]), best)
        if has_frequencies:
            stored = record[FREQUENCY_COLUMNS].to_numpy(dtype=np.int64)
            ok = ok and np.array_equal(stored, counts[stored_mask][: len(FREQUENCY_COLUMNS)])
        if not ok:
            mismatches += 1
            print(f"❌ Hand {hand_index} ({record['cards']}): stored mask {int(record['hold_mask'])} "
                  f"EV {float(record['expected_value']):.6f}, best EV {best:.6f}")
    return len(rows), mismatches


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify a generated video poker table")
    parser.add_argument("table", type=Path, help="Legacy or strategy table file")
    parser.add_argument(
        "--format",
        choices=[TableFormat.STRATEGY.value, TableFormat.LEGACY.value],
        default=TableFormat.STRATEGY.value,
        help="Record layout of the table (default: strategy)"
    )
    parser.add_argument("--aggregate", type=Path, help="Subset aggregate table used for spot checks")
    parser.add_argument("--sample", type=int, default=200, help="Hands to spot check (default: 200)")
    parser.add_argument("--parquet", type=Path, help="Directory to export the decoded table to")
    parser.add_argument("--seed", type=int, default=0, help="Sampling seed (default: 0)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    table_format = TableFormat(args.format)

    try:
        records = read_records(args.table, table_format)
    except (OSError, ValueError) as e:
        print(f"❌ Error reading {args.table}: {e}")
        return 1

    print(f"=== {args.table.name} ({table_format.value}) ===")
    if len(records) < TOTAL_HANDS:
        print(f"Partial table: {len(records):,} of {TOTAL_HANDS:,} records")
    df = records_to_dataframe(records, table_format)
    summarize(df)

    success = True
    if table_format is TableFormat.STRATEGY:
        expected = np.arange(len(df), dtype=np.uint32)
        if np.array_equal(df["hand_index"].to_numpy(), expected):
            print("✅ Records are in hand-index order")
        else:
            print("❌ Records are out of hand-index order")
            success = False

    if args.aggregate:
        aggregate = SubsetAggregateTable.load(args.aggregate)
        checked, mismatches = spot_check(df, aggregate, args.sample, args.seed)
        if mismatches:
            print(f"❌ {mismatches}/{checked} sampled hands disagree with the aggregate solver")
            success = False
        else:
            print(f"✅ {checked} sampled hands match the aggregate solver")

    if args.parquet:
        writer = ParquetWriter(args.parquet)
        path = writer.write_table_file(df, table_format, create_build_metadata())
        print(f"✅ Exported {len(df):,} rows to {path}")

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())

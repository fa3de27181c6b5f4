"""
Parquet export of per-hand tables.

Decodes fixed-size binary records into a DataFrame with one row per hand:
- hand_index, cards (sorted deck order), hold_mask, hold_size, expected_value
- freq_<category> columns for strategy tables
Build metadata (timestamp, git commit, library versions, paytable) is stored
in the Parquet schema metadata as JSON.
"""

import json
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from poker_mechanics.card import FULL_DECK
from poker_mechanics.outcome import WINNING_CATEGORIES
from poker_mechanics.paytable import REFERENCE_PAYTABLE
from precomputing.combinatorics import enumerate_combinations
from precomputing.strategy_table import TableFormat

CARD_NAMES = np.array([str(card) for card in FULL_DECK])
MASK_SIZES = np.array([bin(mask).count("1") for mask in range(32)], dtype=np.uint8)
FREQUENCY_COLUMNS = [f"freq_{category.name.lower()}" for category in WINNING_CATEGORIES]


def _schema(table_format: TableFormat) -> pa.Schema:
    fields = [
        ("hand_index", pa.uint32()),
        ("cards", pa.string()),
        ("hold_mask", pa.uint8()),
        ("hold_size", pa.uint8()),
        ("expected_value", pa.float32()),
    ]
    if table_format is TableFormat.STRATEGY:
        fields.extend((column, pa.uint32()) for column in FREQUENCY_COLUMNS)
    return pa.schema(fields)


def hand_labels(hand_indices: np.ndarray) -> np.ndarray:
    """Card strings such as '2H 3H 4H 5H 6H' for hand indices."""
    combos = enumerate_combinations(52, 5)[hand_indices]
    labels = CARD_NAMES[combos[:, 0]]
    for column in range(1, 5):
        labels = np.char.add(np.char.add(labels, " "), CARD_NAMES[combos[:, column]])
    return labels


def records_to_dataframe(records: np.ndarray, table_format: TableFormat, start: int = 0) -> pd.DataFrame:
    """Decode legacy or strategy records; start is the hand index of the first record."""
    if table_format is TableFormat.AGNOSTIC:
        raise ValueError("Agnostic tables have no single hold per hand to export")

    if table_format is TableFormat.STRATEGY:
        hand_indices = np.asarray(records["hand_index"], dtype=np.int64)
    else:
        hand_indices = np.arange(start, start + len(records), dtype=np.int64)

    masks = np.asarray(records["hold_mask"], dtype=np.uint8)
    df = pd.DataFrame({
        "hand_index": hand_indices.astype(np.uint32),
        "cards": hand_labels(hand_indices),
        "hold_mask": masks,
        "hold_size": MASK_SIZES[masks],
        "expected_value": np.asarray(records["expected_value"], dtype=np.float32),
    })
    if table_format is TableFormat.STRATEGY:
        frequencies = np.asarray(records["winning_frequencies"], dtype=np.uint32)
        for slot, column in enumerate(FREQUENCY_COLUMNS):
            df[column] = frequencies[:, slot]
    return df


class ParquetWriter:
    """Writes decoded tables to Parquet with build metadata."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def write_table_file(
        self,
        df: pd.DataFrame,
        table_format: TableFormat,
        build_metadata: Dict[str, Any],
        filename: Optional[str] = None,
    ) -> Path:
        """Write a decoded table with its exact schema."""
        if len(df) == 0:
            raise ValueError("No records to write")

        file_path = self.output_dir / (filename or f"{table_format.value}_table.parquet")
        schema = _schema(table_format)
        table = pa.Table.from_pandas(df[schema.names], schema=schema, preserve_index=False)

        metadata = {
            "table_format": table_format.value,
            "record_size": str(table_format.record_size),
            "build": json.dumps(build_metadata),
        }
        table = table.replace_schema_metadata({key.encode(): value.encode() for key, value in metadata.items()})
        pq.write_table(table, file_path, compression="snappy")
        return file_path


class ParquetReader:
    """Reads Parquet exports back."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def read_table_file(self, filename: str) -> Tuple[pd.DataFrame, Dict[str, Any]]:
        file_path = self.data_dir / filename
        if not file_path.exists():
            raise FileNotFoundError(f"Table export not found: {file_path}")

        table = pq.read_table(file_path)
        df = table.to_pandas()

        metadata = {}
        for key, value in (table.schema.metadata or {}).items():
            try:
                metadata[key.decode()] = json.loads(value.decode())
            except (UnicodeDecodeError, json.JSONDecodeError):
                metadata[key.decode()] = value.decode()
        return df, metadata


def create_build_metadata(
    git_commit: Optional[str] = None,
    paytable_id: str = REFERENCE_PAYTABLE.paytable_id,
) -> Dict[str, Any]:
    """Create build metadata for exported files."""
    metadata = {
        "timestamp": datetime.now().isoformat(),
        "paytable_id": paytable_id,
    }

    if git_commit is None:
        try:
            result = subprocess.run(
                ["git", "rev-parse", "HEAD"],
                capture_output=True,
                text=True,
                timeout=5
            )
            if result.returncode == 0:
                metadata["git_commit"] = result.stdout.strip()
        except (subprocess.TimeoutExpired, FileNotFoundError):
            pass
    else:
        metadata["git_commit"] = git_commit

    metadata["numpy_version"] = np.__version__
    metadata["pandas_version"] = pd.__version__
    metadata["pyarrow_version"] = pa.__version__
    return metadata

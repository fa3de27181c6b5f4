"""
Video poker exact-EV engine and lookup table generation.

Every expected value is exact: outcome counts come from full enumeration of
the draw, either directly or through precomputed subset aggregates.

Key components:
- combinatorics: Pascal table, combination rank/unrank
- subset_aggregate: Winning-category counts per card subset, persisted tables
- canonicalization: Suit-symmetry classes and hold-mask remapping
- hand_solver: Per-mask outcome counts and EVs from the aggregate table
- strategy_table: Fixed-size per-hand record layouts (legacy, strategy, agnostic)
- table_registry: Lazy loading of table files with soft fallback
- ev_engine: Layered EV engine (aggregate, strategy lookup, templates, brute force)
- generator: Resumable, multithreaded lookup table writer
- parquet_io: Parquet export with build metadata
- cli: Command-line interface

Usage:
    lookup-gen --output tables/strategy_table.bin \
      --checkpoint tables/strategy.checkpoint.json --threads 4 --mode strategy
"""

from .combinatorics import TOTAL_HANDS, rank_combination, unrank_combination
from .subset_aggregate import SubsetAggregateTable
from .canonicalization import Canonicalization, canonicalize
from .hand_solver import HandSolver, HoldSolution
from .strategy_table import StrategyTable, AgnosticTable, TableFormat
from .table_registry import TableRegistry, default_registry
from .ev_engine import ExpectedValueEngine, EngineConfig, HandAnalysis
from .generator import GeneratorConfig, LookupTableGenerator, OutputMode
from .parquet_io import ParquetWriter, ParquetReader, create_build_metadata

__version__ = "0.1.0"

__all__ = [
    "TOTAL_HANDS",
    "rank_combination",
    "unrank_combination",
    "SubsetAggregateTable",
    "Canonicalization",
    "canonicalize",
    "HandSolver",
    "HoldSolution",
    "StrategyTable",
    "AgnosticTable",
    "TableFormat",
    "TableRegistry",
    "default_registry",
    "ExpectedValueEngine",
    "EngineConfig",
    "HandAnalysis",
    "GeneratorConfig",
    "LookupTableGenerator",
    "OutputMode",
    "ParquetWriter",
    "ParquetReader",
    "create_build_metadata",
]

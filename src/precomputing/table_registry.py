"""
Process-wide access to the read-only acceleration tables.

Tables are loaded on first use and shared by every engine in the process.
A missing or malformed table is not an error: the registry logs it and
reports the table as unavailable, and engines fall back to slower exact
paths.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from precomputing.errors import TableLoadError
from precomputing.strategy_table import StrategyTable
from precomputing.subset_aggregate import SubsetAggregateTable

logger = logging.getLogger(__name__)

DEFAULT_TABLE_DIR = Path("precomputed_tables")
AGGREGATE_FILENAME = "subset_aggregate.bin"
STRATEGY_FILENAME = "strategy_table.bin"


class TableRegistry:
    """Lazily loaded aggregate and strategy tables."""

    def __init__(
        self,
        table_dir: Path = DEFAULT_TABLE_DIR,
        aggregate_filename: str = AGGREGATE_FILENAME,
        strategy_filename: str = STRATEGY_FILENAME,
    ):
        self.table_dir = Path(table_dir)
        self.aggregate_path = self.table_dir / aggregate_filename
        self.strategy_path = self.table_dir / strategy_filename

        self._lock = threading.Lock()
        self._aggregate: Optional[SubsetAggregateTable] = None
        self._strategy: Optional[StrategyTable] = None
        self._aggregate_checked = False
        self._strategy_checked = False

    def aggregate_table(self, build_if_missing: bool = False) -> Optional[SubsetAggregateTable]:
        """
        The subset aggregate table, or None when it is unavailable.

        With build_if_missing the table is built in memory when no usable
        file exists; the build is done once per registry.
        """
        with self._lock:
            if self._aggregate is None and not self._aggregate_checked:
                self._aggregate_checked = True
                self._aggregate = self._load(SubsetAggregateTable.load, self.aggregate_path)
            if self._aggregate is None and build_if_missing:
                logger.info("Building subset aggregate table in memory")
                self._aggregate = SubsetAggregateTable.build()
            return self._aggregate

    def strategy_table(self) -> Optional[StrategyTable]:
        with self._lock:
            if self._strategy is None and not self._strategy_checked:
                self._strategy_checked = True
                self._strategy = self._load(StrategyTable.load, self.strategy_path)
            return self._strategy

    def install_aggregate_table(self, table: Optional[SubsetAggregateTable]) -> None:
        with self._lock:
            self._aggregate = table
            self._aggregate_checked = True

    def install_strategy_table(self, table: Optional[StrategyTable]) -> None:
        with self._lock:
            self._strategy = table
            self._strategy_checked = True

    @staticmethod
    def _load(loader, path: Path):
        if not path.exists():
            logger.debug("No table at %s", path)
            return None
        try:
            return loader(path)
        except TableLoadError as e:
            logger.warning("Ignoring unusable table: %s", e)
            return None


_default_registry: Optional[TableRegistry] = None
_default_registry_lock = threading.Lock()


def default_registry() -> TableRegistry:
    """The registry shared by engines constructed without an explicit one."""
    global _default_registry
    with _default_registry_lock:
        if _default_registry is None:
            _default_registry = TableRegistry()
        return _default_registry

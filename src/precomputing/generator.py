"""
Offline lookup table generation.

Walks every 5-card hand in combinatorial-rank order, solves one
representative per suit-symmetry class against the subset aggregate table,
and writes fixed-size records in strict hand-index order.

Pipeline:
- worker threads take fixed-size batches from a shared cursor
- finished batches wait in a pending map keyed by start index
- a single writer flushes them in order, then checkpoints
- a stop request lets in-flight batches finish, flushes them and leaves a
  checkpoint for resuming; resumed output is byte-identical
"""

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional

import numpy as np

from poker_mechanics.card import FULL_DECK
from poker_mechanics.hold_mask import NUM_MASKS
from poker_mechanics.paytable import REFERENCE_BET_MULTIPLIER, REFERENCE_PAYTABLE, Paytable
from precomputing.canonicalization import CanonicalKey, canonicalize
from precomputing.checkpoint import Checkpoint, load_checkpoint, remove_checkpoint, save_checkpoint
from precomputing.combinatorics import TOTAL_HANDS, unrank_combination
from precomputing.errors import GeneratorError, GeneratorIOError
from precomputing.hand_solver import HandSolver
from precomputing.strategy_table import TableFormat, new_records
from precomputing.subset_aggregate import SubsetAggregateTable

logger = logging.getLogger(__name__)

BATCH_SIZE = 64
DEFAULT_CHECKPOINT_EVERY = 10_000


class OutputMode(Enum):
    STRATEGY = "strategy"
    LEGACY = "legacy"
    AGNOSTIC = "agnostic"
    AGGREGATE = "aggregate"

    @property
    def table_format(self) -> Optional[TableFormat]:
        if self is OutputMode.AGGREGATE:
            return None
        return TableFormat(self.value)


def default_thread_count() -> int:
    """Half the available cores, at least 1 and at most 4."""
    return min(4, max(1, (os.cpu_count() or 1) // 2))


@dataclass(frozen=True)
class GeneratorConfig:
    output_path: Path
    checkpoint_path: Path
    mode: OutputMode = OutputMode.STRATEGY
    threads: int = field(default_factory=default_thread_count)
    checkpoint_every: int = DEFAULT_CHECKPOINT_EVERY
    fresh: bool = False
    batch_size: int = BATCH_SIZE
    total_hands: int = TOTAL_HANDS

    def __post_init__(self):
        if self.threads < 1:
            raise ValueError(f"threads must be at least 1, got {self.threads}")
        if self.checkpoint_every < 1:
            raise ValueError(f"checkpoint_every must be at least 1, got {self.checkpoint_every}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")
        if not 0 < self.total_hands <= TOTAL_HANDS:
            raise ValueError(f"total_hands must be in 1..{TOTAL_HANDS}, got {self.total_hands}")


@dataclass
class GenerationSummary:
    hands_written: int
    canonical_solved: int
    calculations_done: int
    elapsed_seconds: float
    stopped: bool
    resumed_from: int = 0


@dataclass
class _Batch:
    start: int
    count: int
    data: bytes


class CanonicalStore:
    """Solutions per canonical key, shared by all workers for the whole run."""

    def __init__(self):
        self._solutions: Dict[CanonicalKey, object] = {}
        self._lock = threading.Lock()

    def get(self, key: CanonicalKey):
        with self._lock:
            return self._solutions.get(key)

    def put(self, key: CanonicalKey, solution) -> bool:
        """Store a solution; False if another worker stored one first."""
        with self._lock:
            if key in self._solutions:
                return False
            self._solutions[key] = solution
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._solutions)


class LookupTableGenerator:
    """Writes a per-hand table for one output mode."""

    def __init__(
        self,
        config: GeneratorConfig,
        aggregate: SubsetAggregateTable,
        paytable: Paytable = REFERENCE_PAYTABLE,
        bet_multiplier: float = REFERENCE_BET_MULTIPLIER,
        progress_callback: Optional[Callable[[int, int, int], None]] = None,
    ):
        if config.mode.table_format is None:
            raise GeneratorError("Aggregate mode writes the aggregate table; use write_aggregate_table")
        self.config = config
        self.table_format = config.mode.table_format
        self.solver = HandSolver(aggregate, paytable, bet_multiplier)
        self.progress_callback = progress_callback
        self.store = CanonicalStore()

        self._stop = threading.Event()
        self._assign_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._calculations_lock = threading.Lock()

        self._calculations = 0
        self._cursor = 0
        self._next_write = 0
        self._next_checkpoint = 0
        self._pending: Dict[int, _Batch] = {}
        self._handle = None
        self._error: Optional[BaseException] = None

    def request_stop(self) -> None:
        """Ask workers to finish their current batch and stop."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    # ------------ Solving ------------

    def _solve_canonical(self, key: CanonicalKey, canonical_hand) -> object:
        solution = self.store.get(key)
        if solution is not None:
            return solution

        indices = [card.deck_index for card in canonical_hand]
        if self.table_format is TableFormat.AGNOSTIC:
            solution = self.solver.outcome_counts(indices)
        else:
            solution = self.solver.solve(indices)

        if self.store.put(key, solution):
            with self._calculations_lock:
                self._calculations += 1
        return solution

    def build_batch(self, start: int, count: int) -> bytes:
        """Encode the records of hands start..start+count-1."""
        records = new_records(self.table_format, count)
        for offset in range(count):
            hand_index = start + offset
            cards = [FULL_DECK[index] for index in unrank_combination(hand_index, 5)]
            canonical = canonicalize(cards)
            solution = self._solve_canonical(canonical.key, canonical.canonical_hand)
            if self.table_format is TableFormat.AGNOSTIC:
                remapped = np.empty_like(solution)
                for mask in range(NUM_MASKS):
                    remapped[canonical.remap_mask(mask)] = solution[mask]
                records["hand_index"][offset] = hand_index
                records["outcome_counts"][offset] = remapped
                continue

            records["hold_mask"][offset] = canonical.remap_mask(solution.hold_mask)
            records["expected_value"][offset] = solution.expected_value
            if self.table_format is TableFormat.STRATEGY:
                records["hand_index"][offset] = hand_index
                records["winning_frequencies"][offset] = solution.winning_frequencies
        return records.tobytes()

    # ------------ Pipeline ------------

    def run(self) -> GenerationSummary:
        config = self.config
        record_size = self.table_format.record_size
        started = time.time()

        if config.fresh:
            self._remove_output()
            remove_checkpoint(config.checkpoint_path)

        checkpoint = load_checkpoint(config.checkpoint_path)
        start_index = checkpoint.next_hand_index if checkpoint else 0
        if start_index > config.total_hands:
            raise GeneratorError(
                f"Checkpoint index {start_index} is beyond the requested {config.total_hands} hands"
            )
        self._calculations = checkpoint.calculations_done if checkpoint else 0

        if checkpoint:
            print(f"Resuming from hand index {start_index}")
        else:
            print("Starting new generation")
        print(f"Mode: {config.mode.value}")
        print(f"Threads: {config.threads}")
        print(f"Output: {config.output_path}")
        print(f"Checkpoint: {config.checkpoint_path}")

        self._handle = self._open_output(start_index * record_size)
        self._cursor = start_index
        self._next_write = start_index
        self._next_checkpoint = start_index + config.checkpoint_every

        try:
            workers = [
                threading.Thread(target=self._worker, name=f"lookup-gen-{i}", daemon=True)
                for i in range(config.threads)
            ]
            for worker in workers:
                worker.start()
            for worker in workers:
                worker.join()

            with self._write_lock:
                self._flush_ready()

            if self._error is not None:
                self._best_effort_checkpoint()
                raise GeneratorIOError(f"Generation failed: {self._error}") from self._error

            summary = GenerationSummary(
                hands_written=self._next_write,
                canonical_solved=len(self.store),
                calculations_done=self._calculations,
                elapsed_seconds=time.time() - started,
                stopped=self._next_write < config.total_hands,
                resumed_from=start_index,
            )
            if summary.stopped:
                self._write_checkpoint()
                print("Stopped. Resume with the same --checkpoint and --output flags.")
            else:
                self._handle.flush()
                remove_checkpoint(config.checkpoint_path)
                print(f"Done in {summary.elapsed_seconds:.1f}s. Canonical classes solved: {summary.canonical_solved}")
            return summary
        finally:
            self._handle.close()
            self._handle = None

    def _worker(self) -> None:
        total = self.config.total_hands
        while not self._stop.is_set():
            with self._assign_lock:
                if self._cursor >= total:
                    return
                start = self._cursor
                self._cursor += self.config.batch_size
            count = min(self.config.batch_size, total - start)

            try:
                data = self.build_batch(start, count)
            except Exception as e:
                logger.error("Batch at %d failed: %s", start, e)
                with self._write_lock:
                    if self._error is None:
                        self._error = e
                self._stop.set()
                return

            with self._write_lock:
                self._pending[start] = _Batch(start, count, data)
                self._flush_ready()

    def _flush_ready(self) -> None:
        # Caller holds the write lock.
        while self._error is None and self._next_write in self._pending:
            batch = self._pending.pop(self._next_write)
            try:
                self._handle.write(batch.data)
            except OSError as e:
                self._error = e
                self._stop.set()
                return
            self._next_write += batch.count

            if self._next_write >= self._next_checkpoint:
                try:
                    self._write_checkpoint()
                except GeneratorIOError as e:
                    self._error = e
                    self._stop.set()
                    return
                self._next_checkpoint = self._next_write + self.config.checkpoint_every
                if self.progress_callback:
                    try:
                        self.progress_callback(self._next_write, self.config.total_hands, len(self.store))
                    except Exception as e:
                        logger.error("Progress callback failed at %d: %s", self._next_write, e)
                        self._error = e
                        self._stop.set()
                        return

    def _write_checkpoint(self) -> None:
        """Flush written records to disk, then record how far they reach."""
        try:
            self._handle.flush()
            os.fsync(self._handle.fileno())
        except OSError as e:
            raise GeneratorIOError(f"Cannot flush {self.config.output_path}: {e}") from e
        with self._calculations_lock:
            calculations = self._calculations
        save_checkpoint(self.config.checkpoint_path, Checkpoint.now(self._next_write, calculations))

    def _best_effort_checkpoint(self) -> None:
        try:
            self._write_checkpoint()
        except GeneratorIOError as e:
            logger.error("Could not save checkpoint after failure: %s", e)

    def _open_output(self, resume_offset: int):
        path = Path(self.config.output_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if resume_offset == 0:
                return open(path, "wb")
            if not path.exists() or path.stat().st_size < resume_offset:
                raise GeneratorIOError(f"Output {path} is shorter than the checkpoint says; rerun with --fresh")
            handle = open(path, "r+b")
            # Records past the checkpoint may be partial; they are rewritten.
            handle.truncate(resume_offset)
            handle.seek(resume_offset)
            return handle
        except OSError as e:
            raise GeneratorIOError(f"Cannot open output {path}: {e}") from e

    def _remove_output(self) -> None:
        try:
            Path(self.config.output_path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise GeneratorIOError(f"Cannot remove {self.config.output_path}: {e}") from e


def write_aggregate_table(aggregate: SubsetAggregateTable, config: GeneratorConfig) -> Path:
    """Aggregate mode: persist the table and drop any stale checkpoint."""
    try:
        path = aggregate.save(config.output_path)
    except OSError as e:
        raise GeneratorIOError(f"Cannot write aggregate table {config.output_path}: {e}") from e
    remove_checkpoint(config.checkpoint_path)
    return path

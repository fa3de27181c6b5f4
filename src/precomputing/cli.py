"""
CLI for offline lookup table generation.

Implements the command:
lookup-gen --output tables/strategy_table.bin --checkpoint tables/strategy.checkpoint.json \
  --threads 4 --checkpoint-every 10000 --mode strategy
"""

import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional

from precomputing.combinatorics import TOTAL_HANDS
from precomputing.errors import GeneratorError, TableLoadError
from precomputing.generator import (
    DEFAULT_CHECKPOINT_EVERY,
    GeneratorConfig,
    LookupTableGenerator,
    OutputMode,
    default_thread_count,
    write_aggregate_table,
)
from precomputing.subset_aggregate import SubsetAggregateTable


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate video poker lookup tables"
    )

    parser.add_argument(
        "--output",
        type=Path,
        required=True,
        help="Output table file"
    )

    parser.add_argument(
        "--checkpoint",
        type=Path,
        help="Checkpoint file used to resume (required except in aggregate mode)"
    )

    parser.add_argument(
        "--threads",
        type=int,
        default=default_thread_count(),
        help=f"Worker threads (default: {default_thread_count()})"
    )

    parser.add_argument(
        "--checkpoint-every",
        type=int,
        default=DEFAULT_CHECKPOINT_EVERY,
        help=f"Hands written between checkpoints (default: {DEFAULT_CHECKPOINT_EVERY})"
    )

    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Discard any previous checkpoint and output"
    )

    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in OutputMode],
        default=OutputMode.STRATEGY.value,
        help="Output format (default: strategy)"
    )

    parser.add_argument(
        "--aggregate-table",
        type=Path,
        help="Prebuilt subset aggregate table to solve from instead of building one in memory"
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=TOTAL_HANDS,
        help=f"Only generate the first N hand indices (default: {TOTAL_HANDS})"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args(argv)
    if args.checkpoint is None:
        if args.mode != OutputMode.AGGREGATE.value:
            parser.error("--checkpoint is required for this mode")
        args.checkpoint = args.output.with_name(args.output.name + ".checkpoint.json")
    return args


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes:02d}m{seconds:02d}s"
    if minutes:
        return f"{minutes}m{seconds:02d}s"
    return f"{seconds}s"


class ProgressPrinter:
    """Prints generator progress with rate and ETA."""

    def __init__(self):
        self.started = time.time()
        self.first_written: Optional[int] = None

    def __call__(self, written: int, total: int, solved: int) -> None:
        if self.first_written is None:
            self.first_written = written
        elapsed = time.time() - self.started
        done_here = written - self.first_written
        rate = done_here / elapsed if elapsed > 0 else 0.0
        eta = format_duration((total - written) / rate) if rate > 0 else "?"
        percent = 100.0 * written / total
        print(f"Progress: {written:,}/{total:,} ({percent:.1f}%) | {rate:,.0f} hands/s | "
              f"canonical classes: {solved:,} | ETA {eta}")


def aggregate_progress(step: int, total: int) -> None:
    if step % 8 == 0 or step == total:
        print(f"Aggregate build: {step}/{total} subset positions")


def load_or_build_aggregate(path: Optional[Path], verbose: bool) -> SubsetAggregateTable:
    if path is not None:
        print(f"Loading subset aggregate table from {path}")
        return SubsetAggregateTable.load(path)

    print("Building subset aggregate tables...")
    start_time = time.time()
    table = SubsetAggregateTable.build(progress_callback=aggregate_progress if verbose else None)
    print(f"Subset aggregate tables built in {format_duration(time.time() - start_time)}")
    return table


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = parse_arguments(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = GeneratorConfig(
            output_path=args.output,
            checkpoint_path=args.checkpoint,
            mode=OutputMode(args.mode),
            threads=args.threads,
            checkpoint_every=args.checkpoint_every,
            fresh=args.fresh,
            total_hands=args.limit,
        )
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    print("Video Poker Lookup Table Generation")
    print(f"Hands: {config.total_hands:,} of {TOTAL_HANDS:,}")
    print()

    try:
        aggregate = load_or_build_aggregate(args.aggregate_table, args.verbose)
    except TableLoadError as e:
        print(f"Error: {e}")
        return 1

    if config.mode is OutputMode.AGGREGATE:
        print("Writing aggregate table...")
        path = write_aggregate_table(aggregate, config)
        print(f"Done. Aggregate table written to {path}")
        return 0

    generator = LookupTableGenerator(config, aggregate, progress_callback=ProgressPrinter())

    def handle_stop(signum, frame):
        if not generator.stop_requested:
            print(f"\nReceived signal {signum}, finishing in-flight batches...")
        generator.request_stop()

    previous_handlers = {sig: signal.signal(sig, handle_stop) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        summary = generator.run()
    finally:
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    hands_this_run = summary.hands_written - summary.resumed_from
    if summary.elapsed_seconds > 0:
        print(f"Rate: {hands_this_run / summary.elapsed_seconds:,.1f} hands/second")
    print(f"Canonical solves (all runs): {summary.calculations_done:,}")
    return 0


def cli_entry_point():
    """Entry point for setuptools console script."""
    try:
        exit_code = main()
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(1)
    except (GeneratorError, OSError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        if "--verbose" in sys.argv or "-v" in sys.argv:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    cli_entry_point()

#!/usr/bin/env python3
"""
Command-line interface for Kader-Planung.

Usage:
    kader-planung run                                  # All clubs, CSV
    kader-planung run --club-prefix C03 --output-format excel
    kader-planung run --club-prefix C03 --resume       # Continue an interrupted run
    kader-planung health                               # Check API reachability
    kader-planung checkpoint-status --checkpoint-file kader-planung-checkpoint-C03.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from .core.config import get_settings
from .core.http import ExternalAPIError
from .core.types import OutputFormat
from .export import Exporter, default_checkpoint_path
from .processor import ClubProcessor, ProcessingError, ProcessorConfig
from .providers import Portal64Client
from .resume import (
    CheckpointError,
    CheckpointStore,
    ConfigMismatchError,
    RunConfig,
)

logger = logging.getLogger("kader_planung.cli")


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging for the command line."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_client(args: argparse.Namespace) -> Portal64Client:
    """Build the API client from settings and command-line overrides."""
    settings = get_settings()
    return Portal64Client(
        base_url=getattr(args, "api_base_url", None) or settings.api_base_url,
        timeout=getattr(args, "timeout", None) or settings.request_timeout,
        requests_per_minute=settings.requests_per_minute,
        max_retries=settings.max_retries,
        page_size=settings.page_size,
    )


def _install_signal_handlers(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; Ctrl+C falls back to KeyboardInterrupt
            pass


# =============================================================================
# run
# =============================================================================


def cmd_run(args: argparse.Namespace) -> int:
    """Process all matching clubs and write the report."""
    return asyncio.run(cmd_run_async(args))


async def cmd_run_async(args: argparse.Namespace) -> int:
    settings = get_settings()

    club_prefix = args.club_prefix or ""
    output_format = OutputFormat(args.output_format or settings.output_format)
    output_dir = Path(args.output_dir or settings.output_dir)
    concurrency = args.concurrency or settings.concurrency
    min_sample_size = args.min_sample_size or settings.min_sample_size

    run_config = RunConfig(
        club_prefix=club_prefix,
        output_format=output_format.value,
        concurrency=concurrency,
    )
    checkpoint_path = (
        Path(args.checkpoint_file)
        if args.checkpoint_file
        else default_checkpoint_path(output_dir, club_prefix)
    )
    store = CheckpointStore(checkpoint_path)

    if args.resume and store.exists():
        try:
            checkpoint = store.load()
            store.validate_config(checkpoint, run_config)
        except ConfigMismatchError as e:
            logger.error("Cannot resume: %s", e)
            return 1
        except CheckpointError as e:
            logger.warning("Cannot use checkpoint (%s); starting fresh", e)
            checkpoint = store.create(run_config)
    else:
        if args.resume:
            logger.info("No checkpoint at %s; starting fresh", checkpoint_path)
        checkpoint = store.create(run_config)

    processor_config = ProcessorConfig(
        club_prefix=club_prefix,
        concurrency=concurrency,
        min_sample_size=min_sample_size,
        checkpoint_interval=settings.checkpoint_interval,
    )

    cancel_event = asyncio.Event()
    _install_signal_handlers(cancel_event)

    logger.info(
        "Starting Kader-Planung run (prefix=%s, format=%s, concurrency=%d)",
        club_prefix or "all",
        output_format.value,
        concurrency,
    )

    async with get_client(args) as client:
        processor = ClubProcessor(client, store, processor_config)
        try:
            result = await processor.run(checkpoint, cancel_event)
        except ProcessingError as e:
            logger.error("Run aborted: %s", e)
            return 1

    if result.cancelled:
        logger.warning("Run cancelled; progress saved to %s. Rerun with --resume to continue.", checkpoint_path)
        return 1

    exporter = Exporter(output_dir)
    try:
        output_file = exporter.export(result.records, output_format, club_prefix)
        stats_file = exporter.export_statistics(result.statistics, club_prefix)
    except OSError as e:
        logger.error("Failed to write report: %s", e)
        return 1

    print("\nKader-Planung complete")
    print("=" * 50)
    print(f"Clubs processed: {result.processed_clubs}/{result.total_clubs}")
    print(f"Clubs failed: {result.failed_clubs}")
    print(f"Players processed: {result.total_players - result.failed_players}/{result.total_players}")
    print(f"Players failed: {result.failed_players}")
    print(f"Groups excluded (sample size < {min_sample_size}): {result.excluded_groups}")
    print(f"Duration: {result.duration:.1f}s")
    print(f"Output: {output_file}")
    if stats_file:
        print(f"Statistics: {stats_file}")

    if result.all_failed:
        logger.error(
            "Nothing succeeded (%d players and %d clubs failed); checkpoint kept at %s",
            result.failed_players,
            result.failed_clubs,
            checkpoint_path,
        )
        return 1

    if result.failed_players or result.failed_clubs:
        logger.warning(
            "%d players and %d clubs failed; see log for details",
            result.failed_players,
            result.failed_clubs,
        )

    if result.fully_successful:
        store.cleanup()
    else:
        logger.info(
            "Checkpoint kept at %s; rerun with --resume to retry failed clubs", checkpoint_path
        )
    return 0


# =============================================================================
# health
# =============================================================================


def cmd_health(args: argparse.Namespace) -> int:
    """Check that the API is reachable."""
    return asyncio.run(cmd_health_async(args))


async def cmd_health_async(args: argparse.Namespace) -> int:
    async with get_client(args) as client:
        try:
            status = await client.check_health()
        except ExternalAPIError as e:
            logger.error("API health check failed: %s", e)
            return 1

    print(json.dumps(status, indent=2, default=str))
    return 0


# =============================================================================
# checkpoint-status
# =============================================================================


def cmd_checkpoint_status(args: argparse.Namespace) -> int:
    """Show progress stored in a checkpoint file."""
    store = CheckpointStore(args.checkpoint_file)

    try:
        checkpoint = store.load()
    except CheckpointError as e:
        logger.error("%s", e)
        return 1

    summary = store.summary(checkpoint)

    print("\nCheckpoint Status")
    print("=" * 50)
    print(f"File: {store.path}")
    print(f"Saved: {summary['timestamp']}")
    print(f"Club prefix: {summary['club_prefix'] or 'all'}")
    print(f"Output format: {summary['output_format']}")
    print(f"Concurrency: {summary['concurrency']}")
    print(f"Phase: {summary['phase']}")
    print(f"Clubs: {summary['processed_clubs']}/{summary['total_clubs']}")
    for entity_type, counts in sorted(summary["ledger"].items()):
        print(f"  {entity_type}: {counts['completed']} completed, {counts['failed']} failed")
    print(f"Partial entries: {summary['partial_entries']}")
    return 0


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kader-planung",
        description="Squad planning report with historical analysis and age/gender percentiles",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    run_parser = subparsers.add_parser("run", help="Process clubs and write the report")
    run_parser.add_argument("--club-prefix", default="", help="Only clubs whose id starts with this prefix")
    run_parser.add_argument(
        "--output-format",
        choices=[fmt.value for fmt in OutputFormat],
        help="Report format (default: csv)",
    )
    run_parser.add_argument("--output-dir", help="Directory for reports and the checkpoint")
    run_parser.add_argument("--concurrency", type=int, help="Number of concurrent workers (default: CPU count)")
    run_parser.add_argument("--resume", action="store_true", help="Resume from the checkpoint if present")
    run_parser.add_argument("--checkpoint-file", help="Checkpoint path (default: derived from prefix)")
    run_parser.add_argument("--api-base-url", help="Portal64 API base URL")
    run_parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    run_parser.add_argument("--min-sample-size", type=int, help="Minimum players per age/gender group (default: 100)")
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    # health
    health_parser = subparsers.add_parser("health", help="Check API reachability")
    health_parser.add_argument("--api-base-url", help="Portal64 API base URL")
    health_parser.add_argument("--timeout", type=float, help="Request timeout in seconds")

    # checkpoint-status
    status_parser = subparsers.add_parser("checkpoint-status", help="Show checkpoint progress")
    status_parser.add_argument("--checkpoint-file", required=True, help="Checkpoint path")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(getattr(args, "verbose", False))

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "run": cmd_run,
        "health": cmd_health,
        "checkpoint-status": cmd_checkpoint_status,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())

# src/main.py — v3
"""CLI entry point: run, resume, status, clean commands.

Usage:
    docbrief run [--catalog PATH] [--fresh]
    docbrief resume
    docbrief status [--catalog PATH]
    docbrief clean

Exit codes: 0 success, 1 fatal error, 130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from docbrief.batch.models import RunReport, StatusReport
from docbrief.config.settings import ConfigurationError, Settings, load_settings
from docbrief.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = load_settings()
    except (ConfigurationError, ValidationError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user; progress up to the last checkpoint is kept")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="docbrief",
        description=f"docbrief v{__version__} - resumable LLM briefings for object-store catalogs",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Process a catalog (auto-resumes from a matching checkpoint)",
    )
    p_run.add_argument(
        "--catalog", type=Path, default=None,
        help="Catalog file (default: newest s3_daily_uploads_* in REPORTS_DIR)",
    )
    p_run.add_argument(
        "--fresh", action="store_true",
        help="Ignore any existing checkpoint and start from the first item",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- resume ---
    p_resume = subparsers.add_parser(
        "resume", help="Continue an interrupted run from its checkpoint",
    )
    p_resume.set_defaults(func=_cmd_resume)

    # --- status ---
    p_status = subparsers.add_parser(
        "status", help="Show checkpoint progress (read only)",
    )
    p_status.add_argument(
        "--catalog", type=Path, default=None,
        help="Catalog to compare against (default: newest in REPORTS_DIR)",
    )
    p_status.set_defaults(func=_cmd_status)

    # --- clean ---
    p_clean = subparsers.add_parser(
        "clean", help="Delete the checkpoint so the next run starts fresh",
    )
    p_clean.set_defaults(func=_cmd_clean)

    return parser


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Process the given or newest catalog."""
    from docbrief.catalog.spreadsheet_catalog import find_latest_catalog
    from docbrief.config.settings import require_credentials

    require_credentials(settings)

    catalog_path: Path | None = args.catalog
    if catalog_path is None:
        catalog_path = find_latest_catalog(settings.reports_dir, settings.catalog_prefix)
    if catalog_path is None:
        logger.error(
            "No catalog found in %s (expected %s*.xlsx)",
            settings.reports_dir, settings.catalog_prefix,
        )
        return 1

    runner = build_runner(settings, catalog_path)
    report = await runner.run(fresh=args.fresh)
    _print_run_report(report)
    return 0


async def _cmd_resume(args: argparse.Namespace, settings: Settings) -> int:
    """Continue from the checkpoint's recorded catalog."""
    from docbrief.catalog.spreadsheet_catalog import find_latest_catalog
    from docbrief.checkpoint.progress_store import ProgressStore
    from docbrief.config.settings import require_credentials

    store = ProgressStore(settings.checkpoint_path)
    snapshot = store.load()
    if snapshot is None:
        logger.error("No checkpoint to resume from at %s", store.path)
        return 1

    catalog_path: Path | None = None
    if snapshot.catalog_path:
        catalog_path = Path(snapshot.catalog_path)
    else:
        catalog_path = find_latest_catalog(settings.reports_dir, settings.catalog_prefix)
    if catalog_path is None:
        logger.error("Checkpoint does not record its catalog and none was found")
        return 1

    require_credentials(settings)
    logger.info(
        "Resuming catalog %s from item %d",
        snapshot.source_identity, snapshot.last_processed_index + 1,
    )
    runner = build_runner(settings, catalog_path)
    report = await runner.run(fresh=False)
    _print_run_report(report)
    return 0


async def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    """Print progress; never mutates the checkpoint."""
    from docbrief.batch.runner import query_status
    from docbrief.catalog.base_catalog import CatalogMalformed, CatalogUnavailable
    from docbrief.catalog.spreadsheet_catalog import SpreadsheetCatalog, find_latest_catalog
    from docbrief.checkpoint.progress_store import ProgressStore

    store = ProgressStore(settings.checkpoint_path)
    catalog_path: Path | None = args.catalog
    if catalog_path is None:
        catalog_path = find_latest_catalog(settings.reports_dir, settings.catalog_prefix)

    catalog = None
    if catalog_path is not None:
        catalog = SpreadsheetCatalog(catalog_path, sheet=settings.catalog_sheet)

    try:
        report = query_status(store, settings, catalog)
    except (CatalogUnavailable, CatalogMalformed) as exc:
        logger.warning("Catalog unavailable, reporting checkpoint only: %s", exc)
        report = query_status(store, settings, None)

    _print_status_report(report)
    return 0


async def _cmd_clean(args: argparse.Namespace, settings: Settings) -> int:
    """Delete the checkpoint file."""
    from docbrief.batch.runner import reset
    from docbrief.checkpoint.progress_store import ProgressStore

    store = ProgressStore(settings.checkpoint_path)
    if reset(store):
        print(f"Checkpoint deleted: {store.path}")
    else:
        print(f"No checkpoint at {store.path}")
    return 0


def build_runner(settings: Settings, catalog_path: Path):
    """Wire every component from one Settings instance."""
    from docbrief.batch.runner import BatchRunner
    from docbrief.catalog.spreadsheet_catalog import SpreadsheetCatalog
    from docbrief.checkpoint.progress_store import ProgressStore
    from docbrief.llm.client_factory import create_llm_client
    from docbrief.output.result_sink import ResultSink
    from docbrief.processing.rate_limited_client import RateLimitedClient
    from docbrief.storage.s3_source import S3ContentSource

    catalog = SpreadsheetCatalog(catalog_path, sheet=settings.catalog_sheet)
    store = ProgressStore(settings.checkpoint_path)
    source = S3ContentSource(
        region=settings.aws_region or None,
        endpoint_url=settings.s3_endpoint_url or None,
        access_key_id=settings.aws_access_key_id or None,
        secret_access_key=settings.aws_secret_access_key or None,
    )
    client = RateLimitedClient(source, create_llm_client(settings), settings)
    sink = ResultSink(
        store,
        settings.reports_dir,
        artifact_format=settings.artifact_format,
        prompt_style=settings.prompt_style,
    )
    return BatchRunner(catalog, store, client, sink, settings)


def _print_run_report(report: RunReport) -> None:
    print("\nRun complete:")
    print(f"  Catalog:      {report.source_identity}")
    print(f"  Items:        {report.total_items} ({report.newly_processed} this run)")
    print(f"  Succeeded:    {report.succeeded}")
    print(f"  Skipped:      {report.skipped}")
    print(f"  Failed:       {report.failed}")
    print(f"  Artifact:     {report.artifact_path}")
    print(f"  Duration:     {report.duration_seconds:.1f}s")


def _print_status_report(report: StatusReport) -> None:
    print(f"\nCheckpoint: {report.checkpoint_path}")
    if not report.has_checkpoint:
        print("  No checkpoint; the next run starts from the first item.")
    else:
        print(f"  Catalog:      {report.checkpoint_identity}")
        print(f"  Last saved:   {report.saved_at.isoformat() if report.saved_at else '-'}")

    if report.total is None:
        print(f"  Processed:    {report.processed}")
        return

    if report.has_checkpoint and not report.identity_matches:
        print(f"  Stale: current catalog is {report.catalog_identity}; a run starts over.")
    if report.catalog_changed:
        print("  Catalog changed since the checkpoint; run 'clean' or use --fresh.")
    print(f"  Processed:    {report.processed}/{report.total} ({report.percent:.1f}%)")
    print(f"  Remaining:    {report.remaining}")
    eta_min = (report.eta_seconds or 0.0) / 60
    print(f"  ETA:          ~{eta_min:.0f} min")


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from docbrief.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    for name in ("httpx", "httpcore", "botocore", "boto3", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def cli() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    cli()

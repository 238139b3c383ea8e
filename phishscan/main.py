"""
Main entry point for phishscan.
"""

import asyncio
import sys
from pathlib import Path

from phishscan.crawler.errors import SessionRelaunchFailed
from phishscan.utils.config import (
    ConcurrencyConfig,
    Settings,
    ensure_directories,
    get_project_root,
    get_settings,
)
from phishscan.utils.logging import configure_logging, get_logger


def initialize(verbose: bool = False) -> Settings:
    """Initialize directories and logging."""
    ensure_directories()

    settings = get_settings()
    configure_logging(
        log_level="DEBUG" if verbose else settings.general.log_level,
        json_format=True,
    )

    logger = get_logger(__name__)
    logger.info(
        "phishscan initializing",
        version=settings.general.version,
        log_level=settings.general.log_level,
        proxy_mode=settings.proxy.mode,
    )
    return settings


def apply_overrides(
    settings: Settings,
    concurrency: int | None = None,
    proxy_concurrency: int | None = None,
) -> Settings:
    """Return settings with command-line concurrency overrides applied.

    Raises:
        pydantic.ValidationError: If a bound is below 1.
    """
    if concurrency is None and proxy_concurrency is None:
        return settings

    current = settings.concurrency
    bounds = ConcurrencyConfig(
        max_concurrent_scans=concurrency if concurrency is not None else current.max_concurrent_scans,
        max_proxy_scans=(
            proxy_concurrency if proxy_concurrency is not None else current.max_proxy_scans
        ),
    )
    return settings.model_copy(update={"concurrency": bounds})


async def run_scan(
    input_path: Path,
    output_path: Path,
    errors_path: Path,
    settings: Settings,
) -> int:
    """Scan every URL of input_path and write the result and error CSVs.

    Returns:
        Number of failed URLs.
    """
    from phishscan.scheduler.batch import BatchScanner
    from phishscan.storage.results import read_tasks, write_errors, write_results

    logger = get_logger(__name__)

    tasks = read_tasks(input_path)
    if not tasks:
        logger.warning("No URLs to scan", input=str(input_path))
        return 0

    scanner = BatchScanner(settings)
    try:
        await scanner.scan(tasks)
    finally:
        # Partial results are still written when the batch aborts
        write_results(output_path, scanner.records())
        write_errors(errors_path, scanner.errors)

    logger.info(
        "Scan complete",
        urls=len(scanner.outcomes),
        failed=len(scanner.errors),
        output=str(output_path),
    )
    return len(scanner.errors)


def main() -> None:
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="phishscan",
        description="phishscan - headless browser URL scanner for phishing/malware triage",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="Scan URLs from a url,label CSV")
    scan_parser.add_argument("input", type=Path, help="Input CSV (url,label)")
    scan_parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Result CSV (default: <output_dir>/results.csv)",
    )
    scan_parser.add_argument(
        "--errors",
        type=Path,
        help="Error log CSV (default: <output_dir>/errors.csv)",
    )
    scan_parser.add_argument(
        "--concurrency",
        type=int,
        help="Maximum URLs scanned at once",
    )
    scan_parser.add_argument(
        "--proxy-concurrency",
        type=int,
        help="Maximum proxy-routed attempts at once",
    )
    scan_parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()

    settings = initialize(verbose=args.verbose)
    logger = get_logger(__name__)

    if not args.input.exists():
        print(f"Error: input file not found: {args.input}", file=sys.stderr)
        sys.exit(2)

    try:
        settings = apply_overrides(settings, args.concurrency, args.proxy_concurrency)
    except ValueError as e:
        print(f"Error: invalid concurrency: {e}", file=sys.stderr)
        sys.exit(2)

    output_dir = get_project_root() / settings.general.output_dir
    output_path = args.output or output_dir / "results.csv"
    errors_path = args.errors or output_dir / "errors.csv"

    try:
        failed = asyncio.run(run_scan(args.input, output_path, errors_path, settings))
    except SessionRelaunchFailed as e:
        logger.error("Batch aborted", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        sys.exit(130)

    print(f"Scanned URLs written to {output_path} ({failed} failed, see {errors_path})")


if __name__ == "__main__":
    main()

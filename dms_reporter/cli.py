from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Sequence

from dms_reporter.json_logger import JsonLogger, get_logger, log_event, new_run_id


def configure_logging(logger: JsonLogger) -> None:
    """Hook to extend logging configuration if needed."""

    _ = logger


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dms-reporter", description="Nightly DMS alert report automation")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Download, summarise and e-mail the nightly report")
    run_parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")
    run_parser.add_argument("--headed", action="store_true", help="Show the browser window")

    summarize_parser = subparsers.add_parser("summarize", help="Add the pivot sheet to a local report file")
    summarize_parser.add_argument("path", type=Path, help="Downloaded report (.xlsx, .xls or .csv)")

    return parser


def _run(args: argparse.Namespace) -> int:
    from dms_reporter.config import ConfigError, load_settings
    from dms_reporter.pipeline import ExitCodes, run_pipeline

    run_id = args.run_id or new_run_id()
    try:
        settings = load_settings()
    except ConfigError as exc:
        logger = get_logger(run_id=run_id)
        log_event(logger=logger, phase="init", status="error", message=str(exc))
        logger.close()
        return ExitCodes.BAD_CONFIG

    if args.headed:
        settings = settings.with_overrides(browser_headless=False)

    logger = get_logger(run_id=run_id, log_file_path=settings.json_log_file or None)
    configure_logging(logger)
    try:
        return asyncio.run(run_pipeline(settings=settings, logger=logger))
    finally:
        logger.close()


def _summarize(args: argparse.Namespace) -> int:
    from dms_reporter.aggregator import summarize_report

    logger = get_logger(log_file_path=None)
    configure_logging(logger)
    try:
        output = summarize_report(args.path, logger=logger)
    finally:
        logger.close()
    print(output)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.command == "run":
        return _run(args)
    if args.command == "summarize":
        return _summarize(args)

    parser.error("Unknown command")
    return 1

"""Nightly DMS report pipeline: login → report centre → export → summarise → e-mail."""
from __future__ import annotations

import asyncio
import contextlib
import time
from datetime import date
from pathlib import Path
from typing import Iterable
from zoneinfo import ZoneInfoNotFoundError

from playwright.async_api import Browser, BrowserContext, async_playwright

from dms_reporter.aggregator import summarize_report
from dms_reporter.browser import launch_browser, new_report_context, route_downloads
from dms_reporter.captcha import CaptchaReader, TesseractCaptchaReader
from dms_reporter.config import ConfigError, Settings
from dms_reporter.date_utils import aware_now, get_timezone, report_time_window
from dms_reporter.download_watcher import (
    candidate_directories,
    normalize_download_name,
    wait_for_download,
)
from dms_reporter.errors import (
    DownloadTimeout,
    LoginFailed,
    NavigationTimeout,
)
from dms_reporter.json_logger import JsonLogger, log_event, timed_event
from dms_reporter.login import perform_login
from dms_reporter.notifications import (
    FAILURE_BODY_TEMPLATE,
    FAILURE_SUBJECT_TEMPLATE,
    REPORT_BODY_TEMPLATE,
    REPORT_SUBJECT_TEMPLATE,
    render_template,
    send_report_email,
)
from dms_reporter.report_center import export_report, open_report_center, prepare_report_page

PIPELINE_NAME = "dms_report"
RETAINED_REPORT_SUFFIXES = (".xls", ".xlsx", ".csv")


# Exit code mapping (import and use in runner)
class ExitCodes:
    OK = 0                       # report delivered (or summarised when e-mail is disabled)
    AUTH_FAILED = 20             # login attempts exhausted
    BAD_CONFIG = 30              # malformed settings
    NET_TIMEOUT = 40             # report centre tab or download never appeared
    UNCAUGHT = 50                # any other stage failure


def exit_code_for(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ZoneInfoNotFoundError)):
        return ExitCodes.BAD_CONFIG
    if isinstance(exc, LoginFailed):
        return ExitCodes.AUTH_FAILED
    if isinstance(exc, (NavigationTimeout, DownloadTimeout)):
        return ExitCodes.NET_TIMEOUT
    return ExitCodes.UNCAUGHT


async def capture_failure_screenshot(
    context: BrowserContext | None, *, target: Path, logger: JsonLogger
) -> Path | None:
    """Full-page screenshot of the most recently opened tab."""

    if context is None:
        return None
    try:
        pages = context.pages
        if not pages:
            return None
        target.parent.mkdir(parents=True, exist_ok=True)
        await pages[-1].screenshot(path=str(target), full_page=True)
    except Exception as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="warn",
            message="Unable to capture failure screenshot",
            error=str(exc),
        )
        return None
    log_event(logger=logger, phase="orchestrator", message="Failure screenshot saved", path=str(target))
    return target


async def _notify_failure(
    *, settings: Settings, logger: JsonLogger, exc: BaseException, screenshot: Path | None
) -> None:
    await asyncio.to_thread(
        send_report_email,
        settings=settings,
        subject=render_template(FAILURE_SUBJECT_TEMPLATE, {}),
        body=render_template(FAILURE_BODY_TEMPLATE, {"error": str(exc)}),
        attachments=[screenshot] if screenshot else [],
        logger=logger,
    )


def cleanup_files(paths: Iterable[Path], *, logger: JsonLogger) -> None:
    for path in dict.fromkeys(paths):
        try:
            if path.exists():
                path.unlink()
                log_event(logger=logger, phase="cleanup", message="File deleted.", path=str(path))
        except OSError as exc:
            log_event(
                logger=logger,
                phase="cleanup",
                status="warn",
                message="Unable to delete file",
                path=str(path),
                error=str(exc),
            )


def prune_old_reports(
    directory: Path, *, max_age_days: int, logger: JsonLogger, now: float | None = None
) -> list[Path]:
    """Delete report files left behind by runs that could not e-mail them.

    Only spreadsheet exports older than ``max_age_days`` are removed; a
    non-positive value keeps everything.
    """

    if max_age_days <= 0 or not directory.is_dir():
        return []
    cutoff = (time.time() if now is None else now) - max_age_days * 86_400
    stale = [
        path
        for path in directory.iterdir()
        if path.is_file()
        and path.suffix.lower() in RETAINED_REPORT_SUFFIXES
        and path.stat().st_mtime < cutoff
    ]
    if stale:
        log_event(
            logger=logger,
            phase="cleanup",
            message="Pruning old report files",
            count=len(stale),
            max_age_days=max_age_days,
        )
        cleanup_files(stale, logger=logger)
    return stale


async def _execute_stages(
    *,
    context: BrowserContext,
    settings: Settings,
    logger: JsonLogger,
    captcha_reader: CaptchaReader,
    run_day: date,
) -> None:
    page = await context.new_page()

    with timed_event(logger=logger, phase="login", message="Login"):
        await perform_login(page=page, settings=settings, captcha_reader=captcha_reader, logger=logger)

    with timed_event(logger=logger, phase="report_center", message="Accessing Report Center"):
        report_page = await open_report_center(context=context, page=page, settings=settings, logger=logger)
        await prepare_report_page(report_page, logger=logger)

    window = report_time_window(run_day)
    with timed_event(logger=logger, phase="filters", message="Report filters and export"):
        await export_report(page=report_page, window=window, settings=settings, logger=logger)

    with timed_event(logger=logger, phase="download", message="Waiting for file download"):
        downloaded = await wait_for_download(
            directories=candidate_directories(settings.download_dir, settings.fallback_download_dir),
            timeout_ms=settings.download_timeout_ms,
            logger=logger,
        )
    downloaded = normalize_download_name(downloaded, report_date=run_day, logger=logger)

    artifact = await asyncio.to_thread(summarize_report, downloaded, logger=logger)

    sent = await asyncio.to_thread(
        send_report_email,
        settings=settings,
        subject=render_template(REPORT_SUBJECT_TEMPLATE, {"report_date": run_day.isoformat()}),
        body=render_template(
            REPORT_BODY_TEMPLATE,
            {"window_start": window.start.strftime("%H:%M"), "window_end": window.end.strftime("%H:%M")},
        ),
        attachments=[artifact],
        logger=logger,
    )
    if sent:
        cleanup_files([artifact, downloaded], logger=logger)
    else:
        log_event(
            logger=logger,
            phase="cleanup",
            status="warn",
            message="Report not e-mailed; keeping file",
            path=str(artifact),
            retention_days=settings.report_retention_days,
        )


async def run_session(
    *,
    browser: Browser,
    settings: Settings,
    logger: JsonLogger,
    captcha_reader: CaptchaReader,
    run_day: date | None = None,
) -> int:
    """Run every stage in one browser context and return the exit code.

    Any stage failure takes the single failure path: screenshot of the last
    tab, failure e-mail, non-zero exit code.
    """

    context: BrowserContext | None = None
    try:
        resolved_day = run_day or aware_now(get_timezone(settings.report_timezone)).date()
        context = await new_report_context(browser=browser, settings=settings)
        context.on(
            "page",
            lambda new_page: route_downloads(new_page, download_dir=settings.download_dir, logger=logger),
        )
        await _execute_stages(
            context=context,
            settings=settings,
            logger=logger,
            captcha_reader=captcha_reader,
            run_day=resolved_day,
        )
    except Exception as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message="PROCESS FAILED",
            error=str(exc),
            exc_type=type(exc).__name__,
        )
        screenshot = await capture_failure_screenshot(
            context, target=settings.error_screenshot_path, logger=logger
        )
        await _notify_failure(settings=settings, logger=logger, exc=exc, screenshot=screenshot)
        return exit_code_for(exc)
    finally:
        if context is not None:
            with contextlib.suppress(Exception):
                await context.close()

    log_event(logger=logger, phase="orchestrator", message="Pipeline complete", pipeline=PIPELINE_NAME)
    return ExitCodes.OK


async def run_pipeline(
    *,
    settings: Settings,
    logger: JsonLogger,
    captcha_reader: CaptchaReader | None = None,
) -> int:
    reader = captcha_reader or TesseractCaptchaReader(settings.tesseract_path or None)
    settings.download_dir.mkdir(parents=True, exist_ok=True)
    prune_old_reports(settings.download_dir, max_age_days=settings.report_retention_days, logger=logger)
    log_event(
        logger=logger,
        phase="init",
        message="Started GPS Report Automation (Night Shift)",
        pipeline=PIPELINE_NAME,
        download_dir=str(settings.download_dir),
    )

    async with async_playwright() as playwright:
        try:
            browser = await launch_browser(playwright=playwright, settings=settings, logger=logger)
        except Exception as exc:
            log_event(
                logger=logger,
                phase="init",
                status="error",
                message="Browser launch failed",
                error=str(exc),
            )
            await _notify_failure(settings=settings, logger=logger, exc=exc, screenshot=None)
            return exit_code_for(exc)
        try:
            return await run_session(
                browser=browser, settings=settings, logger=logger, captcha_reader=reader
            )
        finally:
            with contextlib.suppress(Exception):
                await browser.close()

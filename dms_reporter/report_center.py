"""Open the report centre tab and drive the DMS filter/export flow."""
from __future__ import annotations

import asyncio
import contextlib
import time

from playwright.async_api import BrowserContext, Page

from dms_reporter import page_selectors
from dms_reporter.browser import VIEWPORT
from dms_reporter.config import Settings
from dms_reporter.date_utils import ReportTimeWindow
from dms_reporter.errors import ElementNotFound, NavigationTimeout, ReportNavigationError
from dms_reporter.json_logger import JsonLogger, log_event
from dms_reporter.locator import click_xpath, resolve_and_click


async def open_report_center(
    *,
    context: BrowserContext,
    page: Page,
    settings: Settings,
    logger: JsonLogger,
) -> Page:
    """Trigger the dashboard's report centre and return the tab it spawns."""

    initial_count = len(context.pages)
    deadline = time.monotonic() + settings.report_center_timeout_s
    report_page: Page | None = None

    while time.monotonic() < deadline:
        pages = context.pages
        if len(pages) > initial_count:
            report_page = pages[-1]
            log_event(
                logger=logger,
                phase="report_center",
                message="New tab detected",
                url=report_page.url,
            )
            break

        try:
            result = await page.evaluate(page_selectors.OPEN_REPORT_CENTER_SCRIPT)
        except Exception as exc:
            log_event(
                logger=logger,
                phase="report_center",
                status="warn",
                message="Report centre trigger failed",
                error=str(exc),
            )
        else:
            if result:
                log_event(logger=logger, phase="report_center", message=f"Triggered: {result}")
        await asyncio.sleep(settings.waits.report_center_poll_s)

    if report_page is None:
        pages = context.pages
        if len(pages) <= initial_count:
            raise NavigationTimeout("Failed to open Report Center.")
        report_page = pages[-1]

    await dismiss_insecure_warning(report_page, settings=settings, logger=logger)
    return report_page


async def dismiss_insecure_warning(page: Page, *, settings: Settings, logger: JsonLogger) -> bool:
    """Click through Chrome's insecure-site interstitial if it is showing."""

    try:
        title = await page.title()
        if not any(marker in title for marker in page_selectors.INSECURE_TITLE_MARKERS):
            return False
        advanced = await page.query_selector(page_selectors.INSECURE_DETAILS_BUTTON)
        if advanced is None:
            return False
        await advanced.click()
        await asyncio.sleep(settings.waits.warning_proceed_s)
        proceed = await page.query_selector(page_selectors.INSECURE_PROCEED_LINK)
        if proceed is None:
            return False
        await proceed.click()
    except Exception as exc:
        log_event(
            logger=logger,
            phase="report_center",
            status="warn",
            message="Could not dismiss insecure content warning",
            error=str(exc),
        )
        return False
    log_event(logger=logger, phase="report_center", message="Dismissed insecure content warning")
    return True


async def prepare_report_page(page: Page, *, logger: JsonLogger) -> None:
    with contextlib.suppress(Exception):
        await page.wait_for_load_state("domcontentloaded", timeout=30_000)
    with contextlib.suppress(Exception):
        await page.wait_for_selector(page_selectors.REPORT_ROOT, timeout=10_000)
    await page.set_viewport_size(VIEWPORT)
    log_event(logger=logger, phase="report_center", message="Report centre ready", url=page.url)


async def _replace_input_value(page: Page, field_xpath: str, value: str, *, target: str, logger: JsonLogger) -> None:
    await click_xpath(page, field_xpath, target=target, logger=logger, phase="filters")
    await page.keyboard.down("Control")
    await page.keyboard.press("A")
    await page.keyboard.up("Control")
    await page.keyboard.press("Backspace")
    await page.keyboard.type(value)
    await page.keyboard.press("Enter")


async def _tab_enter(page: Page, *, pause_s: float) -> None:
    await page.keyboard.press("Tab")
    await asyncio.sleep(pause_s)
    await page.keyboard.press("Enter")


async def _required(step: str, coro) -> None:
    try:
        await coro
    except ElementNotFound as exc:
        raise ReportNavigationError(step, str(exc)) from exc


async def export_report(
    *,
    page: Page,
    window: ReportTimeWindow,
    settings: Settings,
    logger: JsonLogger,
) -> None:
    """Select the DMS report, apply alert types and the time window, export.

    The filter form and export button are only reachable by keyboard, so the
    search and EXCEL actions are Tab+Enter presses. No completion signal
    exists for report generation or the export dialog; both are fixed waits.
    """

    waits = settings.waits

    log_event(logger=logger, phase="filters", message="Configuring report filters")
    await _required(
        "report_category",
        resolve_and_click(
            page,
            target="DMS Report button",
            strategies=page_selectors.DMS_REPORT_STRATEGIES,
            logger=logger,
            phase="filters",
        ),
    )

    await asyncio.sleep(waits.category_settle_s)
    await _required(
        "alert_type_dropdown",
        click_xpath(
            page,
            page_selectors.ALERT_TYPE_DROPDOWN,
            target="Alert Type Dropdown",
            logger=logger,
            phase="filters",
        ),
    )
    await asyncio.sleep(waits.dropdown_settle_s)

    for index, label in enumerate(page_selectors.ALERT_TYPE_LABELS):
        if index:
            await asyncio.sleep(waits.option_settle_s)
        await _required(
            "alert_type_option",
            resolve_and_click(
                page,
                target=f"Alert option {label}",
                strategies=page_selectors.alert_option_strategies(label),
                logger=logger,
                phase="filters",
            ),
        )
    await page.keyboard.press("Escape")

    log_event(
        logger=logger,
        phase="filters",
        message="Setting report time window",
        start=window.start_text,
        end=window.end_text,
    )
    await _required(
        "start_date",
        _replace_input_value(
            page, page_selectors.START_DATE_INPUT, window.start_text, target="Start Date", logger=logger
        ),
    )
    await _required(
        "end_date",
        _replace_input_value(
            page, page_selectors.END_DATE_INPUT, window.end_text, target="End Date", logger=logger
        ),
    )

    await asyncio.sleep(waits.search_focus_s)
    await _tab_enter(page, pause_s=waits.search_tab_s)
    log_event(
        logger=logger,
        phase="filters",
        message="Search submitted; waiting for report generation",
        wait_s=waits.report_generation_s,
    )
    await asyncio.sleep(waits.report_generation_s)

    await _tab_enter(page, pause_s=waits.export_tab_s)
    log_event(
        logger=logger,
        phase="filters",
        message="EXCEL export requested; waiting for save dialog",
        wait_s=waits.save_dialog_s,
    )
    await asyncio.sleep(waits.save_dialog_s)

    await _required(
        "save",
        resolve_and_click(
            page,
            target="Save Icon",
            strategies=page_selectors.SAVE_BUTTON_STRATEGIES,
            logger=logger,
            phase="filters",
        ),
    )

from __future__ import annotations

from datetime import date

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from dms_reporter import page_selectors
from dms_reporter.date_utils import report_time_window
from dms_reporter.errors import NavigationTimeout, ReportNavigationError
from dms_reporter.report_center import (
    dismiss_insecure_warning,
    export_report,
    open_report_center,
)


class _Recorder:
    def __init__(self, actions: list[tuple]) -> None:
        self.actions = actions

    async def down(self, key: str) -> None:
        self.actions.append(("down", key))

    async def up(self, key: str) -> None:
        self.actions.append(("up", key))

    async def press(self, key: str) -> None:
        self.actions.append(("press", key))

    async def type(self, value: str) -> None:
        self.actions.append(("type", value))


class _Clickable:
    def __init__(self, actions: list[tuple], name: str) -> None:
        self.actions = actions
        self.name = name

    async def click(self) -> None:
        self.actions.append(("click", self.name))


class _FakeReportPage:
    def __init__(self, *, title: str = "Report Center", missing: set[str] = frozenset(), script_result=True) -> None:
        self.url = "http://cctvwli.com:3001/"
        self._title = title
        self.missing = set(missing)
        self.script_result = script_result
        self.actions: list[tuple] = []
        self.keyboard = _Recorder(self.actions)

    async def title(self) -> str:
        return self._title

    async def query_selector(self, selector: str):
        if selector in self.missing:
            return None
        return _Clickable(self.actions, selector)

    async def wait_for_selector(self, selector: str, *, state: str, timeout: int):
        if selector in self.missing:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        return _Clickable(self.actions, selector)

    async def evaluate(self, expression: str):
        self.actions.append(("evaluate",))
        return self.script_result


class _FakeDashboardPage:
    def __init__(self, context: "_FakeContext", *, spawn_on_call: int | None) -> None:
        self.context = context
        self.spawn_on_call = spawn_on_call
        self.calls = 0

    async def evaluate(self, expression: str):
        self.calls += 1
        if self.calls == self.spawn_on_call:
            self.context.pages.append(_FakeReportPage(title="Privacy error"))
            return "Executed showReportCenter() directly"
        return None


class _FakeContext:
    def __init__(self) -> None:
        self.pages: list = []


@pytest.mark.asyncio
async def test_new_tab_is_returned_and_warning_dismissed(settings, logger, events) -> None:
    context = _FakeContext()
    dashboard = _FakeDashboardPage(context, spawn_on_call=2)
    context.pages.append(dashboard)

    report_page = await open_report_center(context=context, page=dashboard, settings=settings, logger=logger)

    assert report_page is context.pages[-1]
    assert dashboard.calls == 2
    assert report_page.actions == [
        ("click", page_selectors.INSECURE_DETAILS_BUTTON),
        ("click", page_selectors.INSECURE_PROCEED_LINK),
    ]
    messages = [entry["message"] for entry in events()]
    assert "New tab detected" in messages
    assert "Dismissed insecure content warning" in messages


@pytest.mark.asyncio
async def test_no_new_tab_raises_navigation_timeout(settings, logger) -> None:
    context = _FakeContext()
    dashboard = _FakeDashboardPage(context, spawn_on_call=None)
    context.pages.append(dashboard)

    with pytest.raises(NavigationTimeout, match="Failed to open Report Center."):
        await open_report_center(
            context=context,
            page=dashboard,
            settings=settings.with_overrides(report_center_timeout_s=0.05),
            logger=logger,
        )
    assert dashboard.calls >= 1


@pytest.mark.asyncio
async def test_secure_page_is_left_alone(settings, logger) -> None:
    page = _FakeReportPage(title="Report Center")

    assert await dismiss_insecure_warning(page, settings=settings, logger=logger) is False
    assert page.actions == []


@pytest.mark.asyncio
async def test_export_report_drives_filters_in_order(settings, logger) -> None:
    page = _FakeReportPage()
    window = report_time_window(date(2024, 3, 15))

    await export_report(page=page, window=window, settings=settings, logger=logger)

    option_clicks = [
        ("click", page_selectors.alert_option_strategies(label)[0].selector())
        for label in page_selectors.ALERT_TYPE_LABELS
    ]

    def field(xpath: str, value: str) -> list[tuple]:
        return [
            ("click", f"xpath={xpath}"),
            ("down", "Control"),
            ("press", "A"),
            ("up", "Control"),
            ("press", "Backspace"),
            ("type", value),
            ("press", "Enter"),
        ]

    assert page.actions == [
        ("click", page_selectors.DMS_REPORT_STRATEGIES[0].selector()),
        ("click", f"xpath={page_selectors.ALERT_TYPE_DROPDOWN}"),
        *option_clicks,
        ("press", "Escape"),
        *field(page_selectors.START_DATE_INPUT, "2024-03-14 18:00:00"),
        *field(page_selectors.END_DATE_INPUT, "2024-03-15 06:00:00"),
        ("press", "Tab"),
        ("press", "Enter"),
        ("press", "Tab"),
        ("press", "Enter"),
        ("evaluate",),
    ]


@pytest.mark.asyncio
async def test_missing_report_category_fails_the_step(settings, logger) -> None:
    missing = {strategy.selector() for strategy in page_selectors.DMS_REPORT_STRATEGIES}
    page = _FakeReportPage(missing=missing, script_result=False)

    with pytest.raises(ReportNavigationError) as excinfo:
        await export_report(
            page=page, window=report_time_window(date(2024, 3, 15)), settings=settings, logger=logger
        )

    assert excinfo.value.step == "report_category"
    assert all(action[0] != "press" for action in page.actions)


@pytest.mark.asyncio
async def test_missing_alert_option_fails_the_step(settings, logger) -> None:
    label = page_selectors.ALERT_TYPE_LABELS[1]
    missing = {strategy.selector() for strategy in page_selectors.alert_option_strategies(label)}
    page = _FakeReportPage(missing=missing)

    with pytest.raises(ReportNavigationError) as excinfo:
        await export_report(
            page=page, window=report_time_window(date(2024, 3, 15)), settings=settings, logger=logger
        )

    assert excinfo.value.step == "alert_type_option"

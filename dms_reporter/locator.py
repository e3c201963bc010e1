"""Resolve a logical UI target through an ordered list of selector strategies."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from playwright.async_api import Page

from dms_reporter.errors import ElementNotFound
from dms_reporter.json_logger import JsonLogger, log_event

DEFAULT_STRATEGY_TIMEOUT_MS = 5_000


class StrategyKind(str, Enum):
    DIRECT = "direct"
    XPATH = "xpath"
    TEXT = "text"
    SCRIPT = "script"


@dataclass(frozen=True)
class SelectorStrategy:
    """One way of finding a target.

    ``SCRIPT`` patterns are JavaScript evaluated in the page; they must perform
    the click themselves and return a truthy value when they did.
    """

    kind: StrategyKind
    pattern: str
    timeout_ms: int | None = None

    def selector(self) -> str:
        if self.kind is StrategyKind.XPATH:
            return self.pattern if self.pattern.startswith("xpath=") else f"xpath={self.pattern}"
        if self.kind is StrategyKind.TEXT:
            return f"text={self.pattern}"
        return self.pattern


def direct(pattern: str, *, timeout_ms: int | None = None) -> SelectorStrategy:
    return SelectorStrategy(StrategyKind.DIRECT, pattern, timeout_ms)


def xpath(pattern: str, *, timeout_ms: int | None = None) -> SelectorStrategy:
    return SelectorStrategy(StrategyKind.XPATH, pattern, timeout_ms)


def text(pattern: str, *, timeout_ms: int | None = None) -> SelectorStrategy:
    return SelectorStrategy(StrategyKind.TEXT, pattern, timeout_ms)


def script(pattern: str) -> SelectorStrategy:
    return SelectorStrategy(StrategyKind.SCRIPT, pattern)


async def _try_strategy(page: Page, strategy: SelectorStrategy, timeout_ms: int) -> bool:
    if strategy.kind is StrategyKind.SCRIPT:
        result: Any = await page.evaluate(strategy.pattern)
        return bool(result)

    handle = await page.wait_for_selector(
        strategy.selector(), state="visible", timeout=strategy.timeout_ms or timeout_ms
    )
    if handle is None:
        return False
    await handle.click()
    return True


async def resolve_and_click(
    page: Page,
    *,
    target: str,
    strategies: Sequence[SelectorStrategy],
    logger: JsonLogger,
    phase: str = "locator",
    timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS,
) -> SelectorStrategy:
    """Click ``target`` using the first strategy that resolves it.

    Each strategy gets its own wait bound. Returns the winning strategy, or
    raises ``ElementNotFound`` once every strategy has failed.
    """

    attempted: list[str] = []
    for index, strategy in enumerate(strategies, start=1):
        attempted.append(strategy.kind.value)
        try:
            clicked = await _try_strategy(page, strategy, timeout_ms)
        except Exception as exc:
            log_event(
                logger=logger,
                phase=phase,
                status="warn",
                message="selector strategy failed",
                target=target,
                strategy=strategy.kind.value,
                strategy_index=index,
                error=str(exc),
            )
            continue
        if clicked:
            log_event(
                logger=logger,
                phase=phase,
                message=f"Clicked: {target}",
                target=target,
                strategy=strategy.kind.value,
                strategy_index=index,
            )
            return strategy
        log_event(
            logger=logger,
            phase=phase,
            status="warn",
            message="selector strategy found nothing",
            target=target,
            strategy=strategy.kind.value,
            strategy_index=index,
        )

    raise ElementNotFound(target, attempted)


async def click_xpath(
    page: Page,
    path: str,
    *,
    target: str,
    logger: JsonLogger,
    phase: str = "locator",
    timeout_ms: int = 10_000,
) -> SelectorStrategy:
    return await resolve_and_click(
        page,
        target=target,
        strategies=[xpath(path, timeout_ms=timeout_ms)],
        logger=logger,
        phase=phase,
        timeout_ms=timeout_ms,
    )

"""Captcha-gated login for the GPS dashboard."""
from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from enum import Enum

from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError

from dms_reporter import page_selectors
from dms_reporter.captcha import CaptchaReader, is_plausible_captcha, normalize_captcha_text
from dms_reporter.config import Credentials, Settings
from dms_reporter.errors import CaptchaUnreadable, LoginFailed, LoginRejected
from dms_reporter.json_logger import JsonLogger, log_event

SUBMIT_NAVIGATION_TIMEOUT_MS = 5_000


class LoginOutcome(str, Enum):
    SUCCESS = "success"
    INVALID_CAPTCHA = "invalid_captcha"
    REJECTED_BY_SERVER = "rejected_by_server"
    TRANSIENT_ERROR = "transient_error"


@dataclass
class LoginAttempt:
    attempt_number: int
    captcha_text: str = ""
    outcome: LoginOutcome = LoginOutcome.TRANSIENT_ERROR


def _on_login_page(url: str | None) -> bool:
    return page_selectors.LOGIN_PAGE_MARKER in (url or "")


async def _read_captcha(*, page: Page, settings: Settings, captcha_reader: CaptchaReader) -> str:
    await page.goto(settings.login_url, wait_until="networkidle")
    await page.wait_for_selector(page_selectors.CAPTCHA_IMAGE)
    await asyncio.sleep(settings.waits.captcha_settle_s)

    element = await page.query_selector(page_selectors.CAPTCHA_IMAGE)
    if element is None:
        raise RuntimeError("Captcha not found")
    image = await element.screenshot()
    return normalize_captcha_text(await captcha_reader.read(image))


async def _submit(*, page: Page, credentials: Credentials, code: str) -> None:
    await page.fill(page_selectors.LOGIN_ACCOUNT, credentials.username)
    await page.fill(page_selectors.LOGIN_PASSWORD, credentials.password)
    await page.fill(page_selectors.LOGIN_CAPTCHA, code)
    await page.click(page_selectors.LOGIN_SUBMIT)
    with contextlib.suppress(PlaywrightTimeoutError):
        await page.wait_for_url(
            lambda url: not _on_login_page(url),
            wait_until="networkidle",
            timeout=SUBMIT_NAVIGATION_TIMEOUT_MS,
        )


async def _attempt_login(
    attempt: LoginAttempt,
    *,
    page: Page,
    credentials: Credentials,
    settings: Settings,
    captcha_reader: CaptchaReader,
) -> None:
    attempt.captcha_text = await _read_captcha(
        page=page, settings=settings, captcha_reader=captcha_reader
    )
    if not is_plausible_captcha(attempt.captcha_text):
        attempt.outcome = LoginOutcome.INVALID_CAPTCHA
        raise CaptchaUnreadable(attempt.captcha_text)

    await _submit(page=page, credentials=credentials, code=attempt.captcha_text)
    if _on_login_page(page.url):
        attempt.outcome = LoginOutcome.REJECTED_BY_SERVER
        raise LoginRejected("Still on the login page after submit")
    attempt.outcome = LoginOutcome.SUCCESS


async def perform_login(
    *,
    page: Page,
    settings: Settings,
    captcha_reader: CaptchaReader,
    logger: JsonLogger,
) -> int:
    """Log in, retrying up to ``settings.login_max_attempts`` times.

    Unreadable captchas are rejected locally without submitting the form.
    Returns the attempt number that succeeded; raises ``LoginFailed`` once
    every attempt is spent.
    """

    credentials = settings.credentials
    if not credentials.complete:
        log_event(
            logger=logger,
            phase="login",
            status="warn",
            message="GPS_USER or GPS_PASSWORD is missing",
        )

    max_attempts = settings.login_max_attempts
    for number in range(1, max_attempts + 1):
        attempt = LoginAttempt(attempt_number=number)
        log_event(
            logger=logger,
            phase="login",
            message=f"Login attempt {number}/{max_attempts}",
            attempt=number,
        )
        try:
            await _attempt_login(
                attempt,
                page=page,
                credentials=credentials,
                settings=settings,
                captcha_reader=captcha_reader,
            )
        except CaptchaUnreadable as exc:
            log_event(
                logger=logger,
                phase="login",
                status="warn",
                message="Invalid captcha; retrying",
                attempt=number,
                captcha=exc.text,
            )
            continue
        except LoginRejected:
            log_event(
                logger=logger,
                phase="login",
                status="warn",
                message="Login rejected; retrying",
                attempt=number,
                captcha=attempt.captcha_text,
            )
            continue
        except Exception as exc:
            attempt.outcome = LoginOutcome.TRANSIENT_ERROR
            log_event(
                logger=logger,
                phase="login",
                status="warn",
                message="Error during login",
                attempt=number,
                error=str(exc),
            )
            continue

        log_event(
            logger=logger,
            phase="login",
            message="Login successful; waiting for dashboard",
            attempt=number,
            settle_s=settings.waits.dashboard_settle_s,
        )
        await asyncio.sleep(settings.waits.dashboard_settle_s)
        return number

    raise LoginFailed(max_attempts)

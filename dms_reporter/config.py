"""
CONFIG.PY: SINGLE SOURCE OF TRUTH

This module is the ONLY place allowed to read environment variables.

Settings are loaded ONCE at process start into a frozen ``Settings`` value and
passed explicitly to every stage. No module keeps ambient global configuration.

Missing credentials are not fatal: the login stage warns and e-mail dispatch is
skipped. Malformed values (non-integer timeouts, bad booleans) fail early with
``ConfigError``.

To build the settings, call:

    from dms_reporter.config import load_settings

    settings = load_settings()
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv


# Directory containing the top-level package
PROJECT_ROOT = Path(__file__).resolve().parents[1]

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_URL = "https://dvrai.net/808gps/login.html"
DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 587
DEFAULT_SENDER_NAME = "Thai Tracking DMS Reporter"
DEFAULT_TIMEZONE = "Asia/Bangkok"

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    message = f"Config key {key} must be a boolean string; got {value!r}"
    logger.error(message)
    raise ConfigError(message)


def _parse_int(value: str, *, key: str) -> int:
    try:
        return int(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be an integer; got {value!r}"
        logger.error(message)
        raise ConfigError(message)


def _parse_float(value: str, *, key: str) -> float:
    try:
        return float(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be a number; got {value!r}"
        logger.error(message)
        raise ConfigError(message)


def _parse_list(value: str) -> list[str]:
    if not value:
        return []
    tokens = re.split(r"[,\n;]", value)
    return [token.strip() for token in tokens if token and token.strip()]


def _parse_timezone(value: str, *, key: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        message = f"Config key {key} must be an IANA timezone name; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    return value


def _resolve_path(value: str, *, default: Path) -> Path:
    stripped = value.strip()
    if not stripped:
        return default
    return Path(stripped).expanduser()


@dataclass(slots=True, frozen=True)
class Credentials:
    username: str
    password: str = field(repr=False)

    @property
    def complete(self) -> bool:
        return bool(self.username and self.password)


@dataclass(slots=True, frozen=True)
class WaitDurations:
    """Fixed settle intervals, in seconds.

    The dashboard exposes no completion events for captcha rendering, the
    post-login bootstrap, server-side report generation or the export dialog,
    so each of these is a deliberate named wait.
    """

    captcha_settle_s: float = 2.0
    dashboard_settle_s: float = 10.0
    report_center_poll_s: float = 5.0
    warning_proceed_s: float = 1.0
    category_settle_s: float = 2.0
    dropdown_settle_s: float = 1.0
    option_settle_s: float = 0.5
    search_focus_s: float = 0.5
    search_tab_s: float = 0.3
    report_generation_s: float = 120.0
    export_tab_s: float = 0.5
    save_dialog_s: float = 20.0


@dataclass(slots=True, frozen=True)
class Settings:
    credentials: Credentials
    login_url: str
    email_from: str
    email_password: str = field(repr=False)
    email_to: list[str]
    email_smtp_host: str
    email_smtp_port: int
    email_use_tls: bool
    email_sender_name: str
    download_dir: Path
    fallback_download_dir: Path
    download_timeout_ms: int
    error_screenshot_path: Path
    report_timezone: str
    report_retention_days: int
    login_max_attempts: int
    browser_headless: bool
    chrome_executable: str
    default_timeout_ms: int
    report_center_timeout_s: float
    tesseract_path: str
    json_log_file: str
    waits: WaitDurations = field(default_factory=WaitDurations)

    @property
    def email_enabled(self) -> bool:
        return bool(self.email_from and self.email_password and self.email_to)

    def with_overrides(self, **changes: object) -> "Settings":
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, env: Mapping[str, str]) -> "Settings":
        def get(key: str, default: str = "") -> str:
            raw = env.get(key)
            if raw is None:
                return default
            return raw.strip()

        waits = WaitDurations(
            dashboard_settle_s=_parse_float(
                get("DASHBOARD_SETTLE_S", "10"), key="DASHBOARD_SETTLE_S"
            ),
            report_generation_s=_parse_float(
                get("REPORT_GENERATION_WAIT_S", "120"), key="REPORT_GENERATION_WAIT_S"
            ),
            save_dialog_s=_parse_float(get("SAVE_DIALOG_WAIT_S", "20"), key="SAVE_DIALOG_WAIT_S"),
        )

        login_max_attempts = _parse_int(get("LOGIN_MAX_ATTEMPTS", "20"), key="LOGIN_MAX_ATTEMPTS")
        if login_max_attempts < 1:
            message = f"Config key LOGIN_MAX_ATTEMPTS must be positive; got {login_max_attempts}"
            logger.error(message)
            raise ConfigError(message)

        return cls(
            credentials=Credentials(username=get("GPS_USER"), password=get("GPS_PASSWORD")),
            login_url=get("GPS_LOGIN_URL") or DEFAULT_LOGIN_URL,
            email_from=get("EMAIL_FROM"),
            email_password=get("EMAIL_PASSWORD"),
            email_to=_parse_list(get("EMAIL_TO")),
            email_smtp_host=get("EMAIL_SMTP_HOST") or DEFAULT_SMTP_HOST,
            email_smtp_port=_parse_int(
                get("EMAIL_SMTP_PORT", str(DEFAULT_SMTP_PORT)), key="EMAIL_SMTP_PORT"
            ),
            email_use_tls=_parse_bool(get("EMAIL_USE_TLS", "true"), key="EMAIL_USE_TLS"),
            email_sender_name=get("EMAIL_SENDER_NAME") or DEFAULT_SENDER_NAME,
            download_dir=_resolve_path(get("DOWNLOAD_DIR"), default=PROJECT_ROOT / "downloads"),
            fallback_download_dir=Path.home() / "Downloads",
            download_timeout_ms=_parse_int(
                get("DOWNLOAD_TIMEOUT_MS", "40000"), key="DOWNLOAD_TIMEOUT_MS"
            ),
            error_screenshot_path=_resolve_path(
                get("ERROR_SCREENSHOT_PATH"), default=PROJECT_ROOT / "error_debug.png"
            ),
            report_timezone=_parse_timezone(
                get("REPORT_TIMEZONE") or DEFAULT_TIMEZONE, key="REPORT_TIMEZONE"
            ),
            report_retention_days=_parse_int(
                get("REPORT_RETENTION_DAYS", "7"), key="REPORT_RETENTION_DAYS"
            ),
            login_max_attempts=login_max_attempts,
            browser_headless=_parse_bool(get("BROWSER_HEADLESS", "true"), key="BROWSER_HEADLESS"),
            chrome_executable=get("CHROME_EXECUTABLE"),
            default_timeout_ms=_parse_int(
                get("DEFAULT_TIMEOUT_MS", "60000"), key="DEFAULT_TIMEOUT_MS"
            ),
            report_center_timeout_s=_parse_float(
                get("REPORT_CENTER_TIMEOUT_S", "60"), key="REPORT_CENTER_TIMEOUT_S"
            ),
            tesseract_path=get("TESSERACT_PATH"),
            json_log_file=get("JSON_LOG_FILE"),
            waits=waits,
        )


def load_settings(env_path: Path | None = None) -> Settings:
    """Load ``.env`` (OS variables win) and build the immutable settings value."""

    load_dotenv(env_path or PROJECT_ROOT / ".env")
    if os.getenv("DEBUG_CONFIG") == "1":
        print("[CONFIG] Loaded .env from:", env_path or PROJECT_ROOT / ".env")
    return Settings.from_mapping(os.environ)

from __future__ import annotations

from pathlib import Path

import pytest

from dms_reporter.config import (
    DEFAULT_LOGIN_URL,
    PROJECT_ROOT,
    ConfigError,
    Settings,
    _parse_list,
    load_settings,
)


def test_defaults_from_empty_environment() -> None:
    settings = Settings.from_mapping({})

    assert settings.login_url == DEFAULT_LOGIN_URL
    assert settings.download_dir == PROJECT_ROOT / "downloads"
    assert settings.download_timeout_ms == 40_000
    assert settings.login_max_attempts == 20
    assert settings.report_timezone == "Asia/Bangkok"
    assert settings.browser_headless is True
    assert settings.default_timeout_ms == 60_000
    assert settings.waits.report_generation_s == 120
    assert settings.waits.save_dialog_s == 20
    assert not settings.credentials.complete
    assert not settings.email_enabled


def test_malformed_integer_raises_config_error() -> None:
    with pytest.raises(ConfigError, match="DOWNLOAD_TIMEOUT_MS"):
        Settings.from_mapping({"DOWNLOAD_TIMEOUT_MS": "forty"})


def test_non_positive_attempt_budget_is_rejected() -> None:
    with pytest.raises(ConfigError, match="LOGIN_MAX_ATTEMPTS"):
        Settings.from_mapping({"LOGIN_MAX_ATTEMPTS": "0"})


def test_boolean_parsing() -> None:
    assert Settings.from_mapping({"BROWSER_HEADLESS": "no"}).browser_headless is False
    with pytest.raises(ConfigError):
        Settings.from_mapping({"EMAIL_USE_TLS": "maybe"})


def test_recipient_list_parsing() -> None:
    assert _parse_list("a@x.com, b@x.com;c@x.com\n d@x.com,,") == [
        "a@x.com",
        "b@x.com",
        "c@x.com",
        "d@x.com",
    ]
    assert _parse_list("") == []


def test_secrets_are_hidden_from_repr() -> None:
    settings = Settings.from_mapping({"GPS_PASSWORD": "hunter2", "EMAIL_PASSWORD": "mailpw"})

    assert "hunter2" not in repr(settings)
    assert "mailpw" not in repr(settings)


def test_with_overrides_returns_new_value(settings: Settings) -> None:
    headed = settings.with_overrides(browser_headless=False)

    assert headed.browser_headless is False
    assert settings.browser_headless is True


def test_load_settings_reads_env_file(tmp_path: Path, monkeypatch) -> None:
    for key in ("GPS_USER", "DOWNLOAD_TIMEOUT_MS"):
        # recorded so the values load_dotenv writes are undone afterwards
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    env_file = tmp_path / ".env"
    env_file.write_text("GPS_USER=from-file\nDOWNLOAD_TIMEOUT_MS=5000\n", encoding="utf-8")

    settings = load_settings(env_file)

    assert settings.credentials.username == "from-file"
    assert settings.download_timeout_ms == 5_000


def test_unknown_timezone_is_rejected() -> None:
    with pytest.raises(ConfigError, match="REPORT_TIMEZONE"):
        Settings.from_mapping({"REPORT_TIMEZONE": "Asia/Bangkokk"})


def test_retention_days_parsed() -> None:
    assert Settings.from_mapping({}).report_retention_days == 7
    assert Settings.from_mapping({"REPORT_RETENTION_DAYS": "0"}).report_retention_days == 0
    with pytest.raises(ConfigError):
        Settings.from_mapping({"REPORT_RETENTION_DAYS": "week"})


def test_email_enabled_needs_sender_password_and_recipients(settings: Settings) -> None:
    assert settings.email_enabled
    assert not settings.with_overrides(email_to=[]).email_enabled
    assert not settings.with_overrides(email_password="").email_enabled

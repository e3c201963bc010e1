from __future__ import annotations

from pathlib import Path

import pytest

from dms_reporter import cli, config
from dms_reporter.pipeline import ExitCodes


def test_summarize_command_prints_output_path(tmp_path: Path, capsys) -> None:
    source = tmp_path / "export.csv"
    source.write_text("License,Alarm Type\nABC-1,Drowsy\n", encoding="utf-8")

    code = cli.main(["summarize", str(source)])

    assert code == 0
    printed = capsys.readouterr().out.strip().splitlines()[-1]
    assert printed == str(tmp_path / "export.xlsx")
    assert (tmp_path / "export.xlsx").exists()


def test_run_with_bad_config_exits_with_config_code(monkeypatch, capsys) -> None:
    monkeypatch.setattr(config, "load_dotenv", lambda *_args, **_kwargs: False)
    monkeypatch.setenv("LOGIN_MAX_ATTEMPTS", "abc")

    code = cli.main(["run", "--run-id", "cli-test"])

    assert code == ExitCodes.BAD_CONFIG
    assert "LOGIN_MAX_ATTEMPTS" in capsys.readouterr().out


def test_headed_flag_overrides_settings(settings, monkeypatch) -> None:
    captured = {}

    async def fake_run_pipeline(*, settings, logger):
        captured["headless"] = settings.browser_headless
        captured["run_id"] = logger.run_id
        return ExitCodes.OK

    monkeypatch.setattr(config, "load_settings", lambda: settings)
    monkeypatch.setattr("dms_reporter.pipeline.run_pipeline", fake_run_pipeline)

    assert cli.main(["run", "--headed", "--run-id", "night-1"]) == ExitCodes.OK
    assert captured == {"headless": False, "run_id": "night-1"}


def test_command_is_required() -> None:
    with pytest.raises(SystemExit):
        cli.main([])


def test_run_with_unknown_timezone_exits_with_config_code(monkeypatch) -> None:
    monkeypatch.setattr(config, "load_dotenv", lambda *_args, **_kwargs: False)
    monkeypatch.setenv("REPORT_TIMEZONE", "Mars/Olympus")

    assert cli.main(["run"]) == ExitCodes.BAD_CONFIG

import dataclasses
import io
import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dms_reporter.config import Settings, WaitDurations  # noqa: E402
from dms_reporter.json_logger import JsonLogger  # noqa: E402


def read_events(logger: JsonLogger) -> list[dict]:
    return [json.loads(line) for line in logger.stream.getvalue().splitlines() if line.strip()]


@pytest.fixture
def logger() -> JsonLogger:
    return JsonLogger(run_id="test", stream=io.StringIO(), log_file_path=None)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    base = Settings.from_mapping(
        {
            "GPS_USER": "night-bot",
            "GPS_PASSWORD": "s3cret",
            "EMAIL_FROM": "reports@example.com",
            "EMAIL_PASSWORD": "mail-pass",
            "EMAIL_TO": "ops@example.com, fleet@example.com",
            "DOWNLOAD_DIR": str(tmp_path / "downloads"),
            "ERROR_SCREENSHOT_PATH": str(tmp_path / "error_debug.png"),
            "LOGIN_MAX_ATTEMPTS": "3",
            "REPORT_CENTER_TIMEOUT_S": "1",
        }
    )
    no_waits = WaitDurations(**{field.name: 0 for field in dataclasses.fields(WaitDurations)})
    return base.with_overrides(waits=no_waits, fallback_download_dir=tmp_path / "missing-downloads")


@pytest.fixture
def events(logger: JsonLogger):
    return lambda: read_events(logger)

"""Timezone-aware helpers for the nightly report window."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from dms_reporter.config import DEFAULT_TIMEZONE

WINDOW_START = time(18, 0)
WINDOW_END = time(6, 0)
WINDOW_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class ReportTimeWindow:
    start: datetime
    end: datetime

    @property
    def start_text(self) -> str:
        return self.start.strftime(WINDOW_FORMAT)

    @property
    def end_text(self) -> str:
        return self.end.strftime(WINDOW_FORMAT)


def get_timezone(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or DEFAULT_TIMEZONE)


def aware_now(tz: ZoneInfo | None = None) -> datetime:
    """Return ``datetime.now`` in the report timezone."""

    return datetime.now(tz or get_timezone())


def report_time_window(reference: date | datetime | None = None, tz: ZoneInfo | None = None) -> ReportTimeWindow:
    """Return the night-shift window: prior day 18:00 to the run day 06:00.

    ``reference`` may be a date or datetime; only its calendar date in the
    report timezone is used.
    """

    if reference is None:
        run_day = aware_now(tz).date()
    elif isinstance(reference, datetime):
        run_day = reference.astimezone(tz).date() if (tz and reference.tzinfo) else reference.date()
    else:
        run_day = reference
    start = datetime.combine(run_day - timedelta(days=1), WINDOW_START)
    end = datetime.combine(run_day, WINDOW_END)
    return ReportTimeWindow(start=start, end=end)

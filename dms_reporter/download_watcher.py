"""Detect a finished browser download by polling the download directories."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Iterable, Sequence

from dms_reporter.errors import DownloadTimeout
from dms_reporter.json_logger import JsonLogger, log_event

IN_PROGRESS_SUFFIXES = (".crdownload", ".tmp", ".part")
SPREADSHEET_SUFFIXES = (".xls", ".xlsx")
POLL_INTERVAL_S = 2.0
CONFIRM_DELAY_S = 3.0
STALE_GRACE_MS = 60_000


@dataclass(frozen=True)
class DownloadCandidate:
    path: Path
    size_bytes: int
    mtime: float
    directory: Path


def candidate_directories(primary: Path, fallback: Path | None) -> list[Path]:
    directories = [primary]
    if fallback is not None and fallback.is_dir() and fallback != primary:
        directories.append(fallback)
    return directories


def _is_finished_name(name: str) -> bool:
    return not name.startswith(".") and not name.endswith(IN_PROGRESS_SUFFIXES)


def find_candidate(directories: Iterable[Path], *, max_age_s: float, now: float | None = None) -> DownloadCandidate | None:
    """Return the newest finished file in the first directory that has a recent one."""

    current = time.time() if now is None else now
    for directory in directories:
        try:
            entries = [entry for entry in directory.iterdir() if entry.is_file() and _is_finished_name(entry.name)]
            stats = [(entry, entry.stat()) for entry in entries]
        except OSError:
            continue
        if not stats:
            continue
        latest, stat = max(stats, key=lambda item: item[1].st_mtime)
        if current - stat.st_mtime < max_age_s:
            return DownloadCandidate(
                path=latest,
                size_bytes=stat.st_size,
                mtime=stat.st_mtime,
                directory=directory,
            )
    return None


def _size_if_exists(path: Path) -> int | None:
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return None


async def wait_for_download(
    *,
    directories: Sequence[Path],
    timeout_ms: int,
    logger: JsonLogger,
    poll_interval_s: float = POLL_INTERVAL_S,
    confirm_delay_s: float = CONFIRM_DELAY_S,
    grace_ms: int = STALE_GRACE_MS,
) -> Path:
    """Resolve with a downloaded file once its size is stable across two reads.

    Files older than ``timeout + grace`` are treated as leftovers from an
    earlier run and ignored. Elapsed time counts both the poll interval and
    the confirmation delay; once it reaches ``timeout_ms`` the wait fails with
    ``DownloadTimeout``.
    """

    log_event(
        logger=logger,
        phase="download",
        message="Waiting for file",
        directories=[str(directory) for directory in directories],
        timeout_ms=timeout_ms,
    )
    max_age_s = (timeout_ms + grace_ms) / 1000
    elapsed_ms = 0.0

    while elapsed_ms < timeout_ms:
        await asyncio.sleep(poll_interval_s)
        elapsed_ms += poll_interval_s * 1000

        candidate = find_candidate(directories, max_age_s=max_age_s)
        if candidate is None or candidate.size_bytes <= 0:
            continue

        log_event(
            logger=logger,
            phase="download",
            message="Found potential file",
            path=str(candidate.path),
            directory=str(candidate.directory),
            size_bytes=candidate.size_bytes,
        )
        await asyncio.sleep(confirm_delay_s)
        elapsed_ms += confirm_delay_s * 1000
        if _size_if_exists(candidate.path) == candidate.size_bytes:
            log_event(logger=logger, phase="download", message="File confirmed", path=str(candidate.path))
            return candidate.path

    raise DownloadTimeout(timeout_ms)


def normalize_download_name(path: Path, *, report_date: date, logger: JsonLogger) -> Path:
    """Give extension-less or oddly named exports a ``.xls`` name."""

    if path.suffix.lower() in SPREADSHEET_SUFFIXES:
        return path

    target = path.with_name(f"GPS_Report_{report_date.isoformat()}.xls")
    try:
        if target.exists():
            target.unlink()
        path.rename(target)
    except OSError as exc:
        log_event(
            logger=logger,
            phase="download",
            status="warn",
            message="Unable to rename downloaded file",
            path=str(path),
            target=str(target),
            error=str(exc),
        )
        return path
    log_event(logger=logger, phase="download", message="Renamed downloaded file", path=str(target))
    return target

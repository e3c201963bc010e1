"""Nightly DMS alert report downloader and summariser."""

from typing import Any

__all__ = ["run_pipeline"]


def __getattr__(name: str) -> Any:
    if name == "run_pipeline":
        from dms_reporter.pipeline import run_pipeline as _run_pipeline

        return _run_pipeline
    raise AttributeError(name)

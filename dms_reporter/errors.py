"""Exception taxonomy shared by the pipeline stages."""
from __future__ import annotations

from typing import Sequence


class PipelineError(RuntimeError):
    """Base class for failures raised by a pipeline stage."""


class CaptchaUnreadable(PipelineError):
    """OCR returned nothing usable; the attempt is retried without submitting."""

    def __init__(self, text: str) -> None:
        super().__init__(f"Captcha text {text!r} is too short to submit")
        self.text = text


class LoginRejected(PipelineError):
    """The server kept us on the login page after submitting the form."""


class LoginFailed(PipelineError):
    """Every login attempt failed."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Failed to login after {attempts} attempts")
        self.attempts = attempts


class ElementNotFound(PipelineError):
    """No selector strategy resolved the requested UI target."""

    def __init__(self, target: str, attempted: Sequence[str] = ()) -> None:
        tried = ", ".join(attempted) or "none"
        super().__init__(f"Element not found: {target} (strategies tried: {tried})")
        self.target = target
        self.attempted = list(attempted)


class ReportNavigationError(PipelineError):
    """A required step of the report filter/export flow failed."""

    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"{step}: {message}")
        self.step = step


class NavigationTimeout(PipelineError):
    """A page or tab did not appear within its time bound."""


class DownloadTimeout(PipelineError):
    """No stable downloaded file appeared before the timeout."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Download timeout ({timeout_ms}ms). No new files found.")
        self.timeout_ms = timeout_ms


class AggregationError(PipelineError):
    """The downloaded sheet could not be summarised."""


class NotificationDeliveryError(PipelineError):
    """SMTP delivery failed."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from playwright.async_api import Browser, BrowserContext, Download, Page

from dms_reporter.config import Settings
from dms_reporter.json_logger import JsonLogger, log_event, new_run_id

VIEWPORT = {"width": 1920, "height": 1080}
ACCEPT_LANGUAGE = "th-TH,th;q=0.9,en;q=0.8"
LOCALE = "th-TH"

# The report centre is served over plain http from a second origin.
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--window-size=1920,1080",
    "--disable-popup-blocking",
    "--allow-running-insecure-content",
    "--ignore-certificate-errors",
    "--unsafely-treat-insecure-origin-as-secure=http://cctvwli.com:3001",
    "--disable-web-security",
    "--disable-features=IsolateOrigins,site-per-process,SafeBrowsing,DownloadBubble,DownloadBubbleV2",
    "--disable-site-isolation-trials",
    "--disable-client-side-phishing-detection",
    "--safebrowsing-disable-auto-update",
    "--safebrowsing-disable-download-protection",
    "--no-first-run",
    "--no-default-browser-check",
    f"--lang={LOCALE}",
]


async def launch_browser(*, playwright: Any, settings: Settings, logger: JsonLogger) -> Browser:
    chrome_exec = (settings.chrome_executable or "").strip() or None
    headless = settings.browser_headless
    launch_kwargs: Dict[str, Any] = {"headless": headless, "args": list(LAUNCH_ARGS)}

    if chrome_exec and Path(chrome_exec).is_file():
        launch_kwargs["executable_path"] = chrome_exec
        log_event(
            logger=logger,
            phase="init",
            message="Launching Playwright with local Chrome executable",
            executable_path=chrome_exec,
            headless=headless,
        )
    elif chrome_exec:
        log_event(
            logger=logger,
            phase="init",
            status="warn",
            message="Configured local Chrome executable missing; falling back to bundled Chromium",
            executable_path=chrome_exec,
            headless=headless,
        )
    else:
        log_event(
            logger=logger,
            phase="init",
            message="Launching Playwright with bundled Chromium",
            headless=headless,
        )

    try:
        return await playwright.chromium.launch(**launch_kwargs)
    except Exception as exc:
        if launch_kwargs.pop("executable_path", None) is not None:
            log_event(
                logger=logger,
                phase="init",
                status="warn",
                message="Local Chrome launch failed; retrying with bundled Chromium",
                executable_path=chrome_exec,
                headless=headless,
                error=str(exc),
            )
            return await playwright.chromium.launch(**launch_kwargs)
        raise


async def new_report_context(*, browser: Browser, settings: Settings) -> BrowserContext:
    context = await browser.new_context(
        accept_downloads=True,
        ignore_https_errors=True,
        locale=LOCALE,
        viewport=VIEWPORT,
        extra_http_headers={"Accept-Language": ACCEPT_LANGUAGE},
    )
    context.set_default_timeout(settings.default_timeout_ms)
    return context


def route_downloads(page: Page, *, download_dir: Path, logger: JsonLogger) -> None:
    """Save every download started from ``page`` into ``download_dir``."""

    async def _save(download: Download) -> None:
        name = download.suggested_filename or f"download_{new_run_id()}"
        target = download_dir / name
        try:
            download_dir.mkdir(parents=True, exist_ok=True)
            await download.save_as(str(target))
        except Exception as exc:
            log_event(
                logger=logger,
                phase="download",
                status="warn",
                message="Unable to save browser download",
                target=str(target),
                error=str(exc),
            )
            return
        log_event(
            logger=logger,
            phase="download",
            message="Browser download saved",
            target=str(target),
            url=download.url,
        )

    page.on("download", _save)

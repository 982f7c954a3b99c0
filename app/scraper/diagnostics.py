"""Best-effort screenshots of pages whose scrape attempt failed."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Optional

from playwright.sync_api import TimeoutError as PWTimeout

from . import config
from .browser import BrowserSessionFactory
from .error_codes import ErrorCode, ScraperError
from .extractor import Deadline
from .logging_utils import _scraper_event
from .utils import log_line

# Share of the capture budget that navigation may use.
NAVIGATION_SHARE = 0.6


class DiagnosticCaptureError(ScraperError):
    error_code = ErrorCode.DIAGNOSTIC


def screenshot_filename(now_ns: Optional[int] = None) -> str:
    """Return a capture file name ordered by capture time."""

    ns = time.time_ns() if now_ns is None else now_ns
    stamp = time.strftime("%Y%m%d_%H%M%S", time.gmtime(ns // 1_000_000_000))
    return f"screenshot_{stamp}_{ns}.png"


class DiagnosticCapturer:
    """Open a short-lived second session to snapshot a failing URL.

    Capture never raises: any failure is logged and ``None`` is returned so a
    scrape failure is never escalated by its diagnostics.

    Session launch, navigation and the screenshot all share one
    ``timeout_seconds`` budget.
    """

    def __init__(
        self,
        session_factory: BrowserSessionFactory,
        *,
        output_dir: Optional[Path] = None,
        timeout_seconds: float = config.DIAGNOSTIC_TIMEOUT_SECONDS,
        logger: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_factory = session_factory
        self._clock = clock
        self.output_dir = output_dir
        self.timeout_seconds = timeout_seconds
        self._log = logger or log_line

    def capture(self, url: str) -> Optional[Path]:
        _scraper_event("diagnostic", step="capture_start", url=url, sink=self._log)
        try:
            path = self._capture(url)
        except DiagnosticCaptureError as exc:
            self._log(f"[DIAGNOSTIC] Failed to capture screenshot for {url}: {exc}")
            _scraper_event(
                "error",
                phase="diagnostic",
                url=url,
                error_code=exc.error_code,
                error=str(exc),
                sink=self._log,
            )
            return None
        self._log(f"[DIAGNOSTIC] Saved screenshot for {url} as {path}")
        return path

    def _capture(self, url: str) -> Path:
        output_dir = self.output_dir or config.SCREENSHOT_DIR
        path = output_dir / screenshot_filename()
        deadline = Deadline(self.timeout_seconds, clock=self._clock)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            with self.session_factory.open_session(self.timeout_seconds) as page:
                # Navigation may only spend part of what is left; the rest is
                # reserved for the screenshot.
                nav_timeout = max(1, int(deadline.remaining_ms() * NAVIGATION_SHARE))
                try:
                    page.goto(url, wait_until="domcontentloaded", timeout=nav_timeout)
                except PWTimeout:
                    # Snapshot whatever rendered before the budget ran out.
                    self._log(f"[DIAGNOSTIC] Navigation timed out for {url}; capturing partial page")
                page.screenshot(path=str(path), full_page=True, timeout=deadline.remaining_ms())
        except Exception as exc:  # noqa: BLE001
            raise DiagnosticCaptureError(f"{type(exc).__name__}: {exc}") from exc
        return path


__all__ = ["DiagnosticCapturer", "DiagnosticCaptureError", "screenshot_filename"]

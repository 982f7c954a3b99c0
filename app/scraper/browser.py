"""Per-attempt Playwright sessions with reduced automation fingerprints."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Sequence

from playwright.sync_api import Error as PWError, Page, sync_playwright

from . import config
from .error_codes import ErrorCode, ScraperError
from .logging_utils import _scraper_event
from .utils import log_line

HIDE_WEBDRIVER_SCRIPT = "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"


class SessionError(ScraperError):
    error_code = ErrorCode.SESSION


class BrowserSessionFactory:
    """Create a fresh, isolated Chromium process for every scrape attempt.

    Sessions are never shared between URLs. Each call to
    :meth:`open_session` starts its own Playwright driver and browser, and
    tears all of it down on exit, including when the caller raises or a
    timeout fires.
    """

    def __init__(
        self,
        *,
        headless: bool = config.HEADLESS,
        user_agent: str = config.USER_AGENT,
        browser_args: Sequence[str] = config.BROWSER_ARGS,
        logger: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.headless = headless
        self.user_agent = user_agent
        self.browser_args = list(browser_args)
        self._log = logger or log_line

    @contextmanager
    def open_session(self, timeout_seconds: float) -> Iterator[Page]:
        """Yield a new page whose default timeout is ``timeout_seconds``."""

        timeout_ms = max(1, int(timeout_seconds * 1000))
        try:
            manager = sync_playwright()
            pw = manager.start()
        except Exception as exc:  # noqa: BLE001
            raise SessionError(f"Unable to start Playwright: {exc}") from exc

        browser = None
        context = None
        try:
            try:
                browser = pw.chromium.launch(
                    headless=self.headless,
                    args=self.browser_args,
                    timeout=timeout_ms,
                )
                context = browser.new_context(
                    user_agent=self.user_agent,
                    locale="en-US",
                    viewport={"width": 1366, "height": 900},
                    ignore_https_errors=True,
                )
                context.add_init_script(HIDE_WEBDRIVER_SCRIPT)
                context.set_default_timeout(timeout_ms)
                context.set_default_navigation_timeout(timeout_ms)
                page = context.new_page()
            except PWError as exc:
                raise SessionError(f"Unable to launch browser session: {exc}") from exc

            yield page
        finally:
            self._teardown(pw, browser, context)

    def _teardown(self, pw, browser, context) -> None:
        for label, closer in (
            ("context", getattr(context, "close", None)),
            ("browser", getattr(browser, "close", None)),
            ("driver", getattr(pw, "stop", None)),
        ):
            if closer is None:
                continue
            try:
                closer()
            except Exception as exc:  # noqa: BLE001
                _scraper_event(
                    "error",
                    phase="session",
                    step=f"close_{label}",
                    error=str(exc),
                    sink=self._log,
                )


__all__ = ["BrowserSessionFactory", "SessionError", "HIDE_WEBDRIVER_SCRIPT"]

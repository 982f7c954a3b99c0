"""Drive one browser page through navigate, wait and extract.

Each call to :meth:`PageExtractor.extract` is one attempt and ends in exactly
one :class:`AttemptSuccess` or :class:`AttemptFailure`:

- Navigate: ``page.goto``. Network, DNS or TLS errors fail with
  ``navigation``.
- StructuralWait: the document body, then any product-identifying element,
  must show up before the attempt budget runs out, otherwise the attempt
  fails with ``timeout``. CAPTCHA walls and redesigned pages end here.
- Extract: name, stock markers and image are read field by field. A field
  that cannot be read falls back to its default; the attempt still succeeds.
  Selector checks wait at most ``check_timeout_ms`` each, and no read outlives
  the attempt budget.
"""
from __future__ import annotations

import time
import urllib.parse
from typing import Callable, Iterable, List, Optional

from playwright.sync_api import Error as PWError, Locator, Page, TimeoutError as PWTimeout

from . import config
from .error_codes import ErrorCode, ScraperError
from .logging_utils import _scraper_event
from .models import AttemptFailure, AttemptResult, AttemptSuccess
from .selectors_products import DEFAULT_RULES, ExtractionRules
from .utils import log_line


class NavigationError(ScraperError):
    error_code = ErrorCode.NAVIGATION


class AttemptTimeoutError(ScraperError):
    error_code = ErrorCode.TIMEOUT


class Deadline:
    """Monotonic time budget shared by every step of one attempt."""

    def __init__(self, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return self.expires_at - self._clock()

    def remaining_ms(self) -> int:
        """Return the remaining budget in ms, raising once it is spent.

        Playwright treats a timeout of ``0`` as "wait forever", so the value
        handed out is never below one millisecond.
        """

        left = self.remaining()
        if left <= 0:
            raise AttemptTimeoutError(f"Attempt budget of {self.seconds}s exhausted")
        return max(1, int(left * 1000))


def is_available(markers: Iterable[Optional[str]]) -> bool:
    """Return ``True`` unless an out-of-stock marker was found.

    ``markers`` holds one entry per out-of-stock candidate: the matched
    selector, or ``None``/blank when the candidate did not match. A page with
    no markers at all is considered in stock.
    """

    return not any(marker and marker.strip() for marker in markers)


def _is_target_closed_error(exc: Exception) -> bool:
    """Return ``True`` if *exc* indicates the Playwright target is gone."""

    message = str(exc)
    return any(
        marker in message
        for marker in (
            "Target closed",
            "Target crashed",
            "has been closed",
            "Execution context was destroyed",
        )
    )


class PageExtractor:
    def __init__(
        self,
        rules: ExtractionRules = DEFAULT_RULES,
        *,
        logger: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        check_timeout_ms: int = config.FIELD_CHECK_TIMEOUT_MS,
    ) -> None:
        self.rules = rules
        self.check_timeout_ms = check_timeout_ms
        self._log = logger or log_line
        self._clock = clock

    def extract(
        self,
        page: Page,
        url: str,
        timeout_seconds: float = config.ATTEMPT_TIMEOUT_SECONDS,
    ) -> AttemptResult:
        deadline = Deadline(timeout_seconds, clock=self._clock)
        try:
            self._navigate(page, url, deadline)
            self._wait_for_structure(page, url, deadline)
        except ScraperError as exc:
            return AttemptFailure(url=url, reason=exc.error_code, detail=str(exc))

        name = self._extract_name(page, url, deadline)
        in_stock = is_available(self._collect_stock_markers(page, url, deadline))
        image_url = self._extract_image(page, url, deadline)
        return AttemptSuccess(url=url, name=name, in_stock=in_stock, image_url=image_url)

    # ------------------------------------------------------------------
    # Navigate / StructuralWait
    # ------------------------------------------------------------------

    def _navigate(self, page: Page, url: str, deadline: Deadline) -> None:
        _scraper_event("nav", step="goto", url=url, sink=self._log)
        try:
            page.goto(url, wait_until="domcontentloaded", timeout=deadline.remaining_ms())
        except PWTimeout as exc:
            raise AttemptTimeoutError(f"goto({url!r}) timed out: {exc}") from exc
        except PWError as exc:
            if _is_target_closed_error(exc):
                raise ScraperError(
                    f"Target closed during navigation to {url}: {exc}",
                    error_code=ErrorCode.SESSION,
                ) from exc
            raise NavigationError(f"goto({url!r}) failed: {exc}") from exc

    def _wait_for_structure(self, page: Page, url: str, deadline: Deadline) -> None:
        steps = (
            ("wait_ready", self.rules.ready_selector, "attached"),
            ("wait_product", self.rules.product_locator, "visible"),
        )
        for step, selector, state in steps:
            try:
                page.wait_for_selector(selector, state=state, timeout=deadline.remaining_ms())
            except PWTimeout as exc:
                raise AttemptTimeoutError(f"{step} for {selector!r} timed out: {exc}") from exc
            except PWError as exc:
                if _is_target_closed_error(exc):
                    raise ScraperError(
                        f"Target closed during {step} on {url}: {exc}",
                        error_code=ErrorCode.SESSION,
                    ) from exc
                raise NavigationError(f"{step} for {selector!r} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Extract
    # ------------------------------------------------------------------

    def _field_failed(self, url: str, field: str, exc: Exception) -> None:
        _scraper_event(
            "state",
            phase="extract",
            kind="field_default",
            field=field,
            url=url,
            error=str(exc),
            sink=self._log,
        )

    def _present(self, locator: Locator, deadline: Deadline) -> bool:
        """Return whether ``locator`` matches, waiting at most one check timeout."""

        timeout = min(self.check_timeout_ms, deadline.remaining_ms())
        try:
            locator.first.wait_for(state="attached", timeout=timeout)
        except PWTimeout:
            return False
        return True

    def _extract_name(self, page: Page, url: str, deadline: Deadline) -> str:
        try:
            for selector in self.rules.name_selectors:
                locator = page.locator(selector)
                if self._present(locator, deadline):
                    text = locator.first.text_content(timeout=deadline.remaining_ms())
                    return (text or "").strip()
        except Exception as exc:  # noqa: BLE001
            self._field_failed(url, "name", exc)
        return ""

    def _collect_stock_markers(self, page: Page, url: str, deadline: Deadline) -> List[Optional[str]]:
        markers: List[Optional[str]] = []
        try:
            for selector in self.rules.out_of_stock_selectors:
                found = self._present(page.locator(selector), deadline)
                markers.append(selector if found else None)
        except Exception as exc:  # noqa: BLE001
            self._field_failed(url, "in_stock", exc)
        return markers

    def _extract_image(self, page: Page, url: str, deadline: Deadline) -> str:
        try:
            for selector in self.rules.image_selectors:
                locator = page.locator(selector)
                if not self._present(locator, deadline):
                    continue
                for attribute in self.rules.image_attributes:
                    value = locator.first.get_attribute(attribute, timeout=deadline.remaining_ms())
                    if value and value.strip():
                        return urllib.parse.urljoin(page.url or url, value.strip())
        except Exception as exc:  # noqa: BLE001
            self._field_failed(url, "image_url", exc)
        return ""


__all__ = [
    "AttemptTimeoutError",
    "Deadline",
    "NavigationError",
    "PageExtractor",
    "is_available",
]

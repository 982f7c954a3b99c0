"""Supervisory loop that keeps the products table fresh.

Workflow per cycle:

- Load the ordered target list (a load failure aborts only this cycle).
- For each URL: pace, open a fresh browser session, extract, tear the session
  down, then either upsert the product or log the failure and capture a
  diagnostic screenshot.
- Record a cycle summary and start over.

The loop only stops when its ``stop_event`` is set (signal handler in
``main.py``) or after one cycle in run-once mode.
"""

from __future__ import annotations

import argparse
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from . import config, db
from .browser import BrowserSessionFactory, SessionError
from .config_validation import validate_runtime_config
from .diagnostics import DiagnosticCapturer
from .error_codes import ErrorCode
from .extractor import PageExtractor
from .logging_utils import _scraper_event
from .models import AttemptFailure, AttemptResult, AttemptSuccess, Product
from .pacing import PacingPolicy
from .targets import LoadError, TargetSource, load_targets
from .telemetry import CycleTelemetry
from .utils import ensure_dirs, log_line, setup_logger

Upsert = Callable[[Product], int]
TargetLoader = Callable[..., List[str]]


class ScrapeLoop:
    """Sequential scraper: one URL, one browser session at a time."""

    def __init__(
        self,
        *,
        targets_source: TargetSource = config.TARGETS_SOURCE,
        session_factory: Optional[BrowserSessionFactory] = None,
        extractor: Optional[PageExtractor] = None,
        diagnostics: Optional[DiagnosticCapturer] = None,
        pacing: Optional[PacingPolicy] = None,
        upsert: Upsert = db.upsert_product,
        target_loader: TargetLoader = load_targets,
        logger: Optional[Callable[[str], None]] = None,
        stop_event: Optional[threading.Event] = None,
        attempt_timeout: float = config.ATTEMPT_TIMEOUT_SECONDS,
        runs_dir: Optional[Path] = None,
        record_cycles: bool = True,
    ) -> None:
        self._log = logger or log_line
        self.stop_event = stop_event or threading.Event()
        self.targets_source = targets_source
        self.session_factory = session_factory or BrowserSessionFactory(logger=self._log)
        self.extractor = extractor or PageExtractor(logger=self._log)
        self.diagnostics = diagnostics or DiagnosticCapturer(
            self.session_factory, logger=self._log
        )
        self.pacing = pacing or PacingPolicy(sleep=self.stop_event.wait, logger=self._log)
        self.upsert = upsert
        self.target_loader = target_loader
        self.attempt_timeout = attempt_timeout
        self.runs_dir = runs_dir
        self.record_cycles = record_cycles

    def stop(self) -> None:
        self.stop_event.set()

    @property
    def stopping(self) -> bool:
        return self.stop_event.is_set()

    # ------------------------------------------------------------------
    # Single URL
    # ------------------------------------------------------------------

    def run_attempt(self, url: str) -> AttemptResult:
        """Scrape ``url`` in a fresh session that is always torn down."""

        try:
            with self.session_factory.open_session(self.attempt_timeout) as page:
                return self.extractor.extract(page, url, self.attempt_timeout)
        except SessionError as exc:
            return AttemptFailure(url=url, reason=exc.error_code, detail=str(exc))

    def _persist(self, result: AttemptSuccess, telemetry: CycleTelemetry) -> None:
        product = result.to_product()
        try:
            product_id = self.upsert(product)
        except db.PersistenceError as exc:
            self._log(f"Database error for {result.url}: {exc}")
            _scraper_event(
                "error",
                phase="persist",
                url=result.url,
                error_code=exc.error_code,
                error=str(exc),
                sink=self._log,
            )
            telemetry.add(result.url, "persist_failed", exc.error_code)
            return
        self._log(f"Successfully updated database for {result.url} (id={product_id})")
        telemetry.add(result.url, "updated", in_stock=result.in_stock)

    def process_url(self, url: str, telemetry: CycleTelemetry) -> Optional[AttemptResult]:
        """Pace, attempt, then persist or diagnose ``url``.

        Returns ``None`` when a stop was requested during the initial delay.
        """

        self.pacing.before_attempt()
        if self.stopping:
            return None

        try:
            self._log(f"Navigating to: {url}")
            result = self.run_attempt(url)
            if isinstance(result, AttemptFailure):
                self._log(
                    f"[ATTEMPT][FAILED] url={url} reason={result.reason} detail={result.detail}"
                )
                telemetry.add(url, "failed", result.reason)
                self.diagnostics.capture(url)
            else:
                self._log(f"Product: {result.name}")
                self._log(f"In Stock: {result.in_stock}")
                self._persist(result, telemetry)
            return result
        finally:
            self.pacing.after_attempt()

    # ------------------------------------------------------------------
    # Cycle / loop
    # ------------------------------------------------------------------

    def run_cycle(self, cycle_index: int = 1) -> Dict[str, Any]:
        telemetry = CycleTelemetry(cycle_index, runs_dir=self.runs_dir)
        _scraper_event("cycle", step="start", cycle=cycle_index, sink=self._log)

        try:
            urls = self.target_loader(self.targets_source, logger=self._log)
        except LoadError as exc:
            self._log(f"Error in scrape cycle: {exc}")
            _scraper_event(
                "error",
                phase="cycle",
                step="load_targets",
                cycle=cycle_index,
                error_code=exc.error_code,
                error=str(exc),
                sink=self._log,
            )
            return {**telemetry.snapshot(), "status": "aborted", "error": str(exc)}

        self._log(f"Scraping {len(urls)} products")
        status = "completed"
        for url in urls:
            if self.stopping:
                self._log("[CYCLE] Stop requested; leaving cycle early.")
                status = "stopped"
                break
            try:
                self.process_url(url, telemetry)
            except Exception as exc:  # noqa: BLE001
                self._log(f"Unexpected error while scraping {url}: {exc!r}")
                telemetry.add(url, "error", ErrorCode.INTERNAL, error=str(exc))

        summary = {**telemetry.snapshot(), "status": status, "targets": len(urls)}
        if self.record_cycles:
            try:
                path = telemetry.finalize({"status": status, "targets": len(urls)})
                summary["summary_path"] = str(path)
            except OSError as exc:
                self._log(f"[CYCLE][WARN] Unable to write cycle summary: {exc}")
        _scraper_event(
            "cycle",
            step="complete",
            cycle=cycle_index,
            status=status,
            targets=len(urls),
            counts=summary["summary"],
            sink=self._log,
        )
        return summary

    def run_forever(
        self,
        *,
        run_once: bool = config.RUN_ONCE,
        cycle_interval: float = config.CYCLE_INTERVAL_SECONDS,
        load_retry_seconds: float = config.LOAD_RETRY_SECONDS,
    ) -> int:
        """Repeat cycles until stopped; return the number of cycles started."""

        cycles = 0
        while not self.stopping:
            cycles += 1
            status = "completed"
            targets = 0
            try:
                summary = self.run_cycle(cycles)
                status = summary.get("status", "completed")
                targets = summary.get("targets", 0)
            except Exception as exc:  # noqa: BLE001
                status = "crashed"
                self._log(f"Error in scrape cycle {cycles}: {exc!r}")
                _scraper_event(
                    "error", phase="cycle", cycle=cycles, error=repr(exc), sink=self._log
                )
            if run_once:
                break
            # A failed load or an empty list would otherwise spin with no pacing.
            idle = status in {"aborted", "crashed"} or (status == "completed" and not targets)
            wait_for = max(cycle_interval, load_retry_seconds) if idle else cycle_interval
            if wait_for > 0 and not self.stopping:
                self.stop_event.wait(wait_for)
        self._log(f"[RUN] Scrape loop exiting after {cycles} cycle(s).")
        return cycles


def run_scrape(
    *,
    targets_source: Optional[TargetSource] = None,
    run_once: bool = config.RUN_ONCE,
    cycle_interval: float = config.CYCLE_INTERVAL_SECONDS,
    stop_event: Optional[threading.Event] = None,
) -> int:
    """Build the default pipeline from ``config`` and run it."""

    ensure_dirs()
    db.initialize_schema()
    loop = ScrapeLoop(
        targets_source=targets_source or config.TARGETS_SOURCE,
        stop_event=stop_event,
    )
    return loop.run_forever(run_once=run_once, cycle_interval=cycle_interval)


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:  # pragma: no cover
    parser = argparse.ArgumentParser(description="Run the product stock scraper")
    parser.add_argument("--targets", default=config.TARGETS_SOURCE)
    parser.add_argument("--once", action="store_true", default=config.RUN_ONCE)
    parser.add_argument("--cycle-interval", type=float, default=config.CYCLE_INTERVAL_SECONDS)
    args = parser.parse_args(argv)

    setup_logger()
    validate_runtime_config("cli")
    run_scrape(
        targets_source=args.targets,
        run_once=args.once,
        cycle_interval=args.cycle_interval,
    )


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()

__all__ = ["ScrapeLoop", "run_scrape", "_cli_entrypoint"]

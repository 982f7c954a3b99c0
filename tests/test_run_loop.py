from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from playwright.sync_api import TimeoutError as PWTimeout

from app.scraper import db
from app.scraper.browser import SessionError
from app.scraper.diagnostics import DiagnosticCapturer
from app.scraper.extractor import PageExtractor
from app.scraper.models import AttemptFailure, AttemptSuccess, Product
from app.scraper.pacing import PacingPolicy
from app.scraper.run import ScrapeLoop
from app.scraper.selectors_products import DEFAULT_RULES
from app.scraper.targets import LoadError
from tests.test_diagnostics import FakeSessionFactory
from tests.test_extractor import FakePage, product_page
from tests.test_products_api import _configure_temp_paths


class UrlSessionFactory(FakeSessionFactory):
    """Hands out a fresh fake page per session, keyed by the URL visited."""

    def __init__(self, pages_by_url: Dict[str, List[FakePage]], error: Optional[Exception] = None) -> None:
        super().__init__(error=error)
        self.pages_by_url = pages_by_url
        self.sessions: List["_LazyPage"] = []

    def open_session(self, timeout_seconds: float):
        lazy = _LazyPage(self.pages_by_url)
        self.sessions.append(lazy)
        self.pages = [lazy]
        return super().open_session(timeout_seconds)


class _LazyPage:
    """Resolves to the prepared page for the URL passed to ``goto``."""

    def __init__(self, pages_by_url: Dict[str, List[FakePage]]) -> None:
        self._pages_by_url = pages_by_url
        self._page: Optional[FakePage] = None
        self.url = ""

    def goto(self, url: str, **kwargs):
        self._page = self._pages_by_url[url].pop(0)
        self.url = url
        return self._page.goto(url, **kwargs)

    def __getattr__(self, name: str):
        return getattr(self._page, name)


class Harness:
    def __init__(self, tmp_path: Path, pages_by_url: Dict[str, List[FakePage]], **kwargs) -> None:
        self.lines: List[str] = []
        self.sleeps: List[float] = []
        self.factory = UrlSessionFactory(pages_by_url, error=kwargs.pop("session_error", None))
        self.stop_event = threading.Event()
        targets = kwargs.pop("targets", ["A", "B"])
        loader = kwargs.pop("target_loader", None)
        self.loop = ScrapeLoop(
            targets_source=targets,
            session_factory=self.factory,
            extractor=PageExtractor(logger=self.lines.append),
            diagnostics=DiagnosticCapturer(
                self.factory, output_dir=tmp_path / "shots", logger=self.lines.append
            ),
            pacing=PacingPolicy((2, 7), (5, 15), sleep=self.sleeps.append, logger=self.lines.append),
            logger=self.lines.append,
            stop_event=self.stop_event,
            runs_dir=tmp_path / "runs",
            **({"target_loader": loader} if loader else {}),
            **kwargs,
        )


@pytest.fixture
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    db.initialize_schema()


def _timeout_page() -> FakePage:
    return product_page(wait_errors={DEFAULT_RULES.product_locator: PWTimeout("Timeout 60000ms exceeded.")})


def test_cycle_success_and_timeout(tmp_path: Path, store: None) -> None:
    pages = {
        "A": [product_page("Widget")],
        # One page for the attempt, one for the diagnostic session.
        "B": [_timeout_page(), FakePage()],
    }
    harness = Harness(tmp_path, pages)
    started = datetime.now(timezone.utc).replace(microsecond=0)

    summary = harness.loop.run_cycle(1)

    products = db.list_products()
    assert len(products) == 1
    record = products[0]
    assert record.url == "A"
    assert record.name == "Widget"
    assert record.in_stock is True
    assert record.updated_at >= started
    assert db.get_product_by_url("B") is None

    failures = [line for line in harness.lines if line.startswith("[ATTEMPT][FAILED]")]
    assert len(failures) == 1
    assert "url=B" in failures[0] and "reason=timeout" in failures[0]
    assert any("[SCRAPER][DIAGNOSTIC]" in line and "'B'" in line for line in harness.lines)
    assert len(list((tmp_path / "shots").glob("screenshot_*.png"))) == 1

    assert summary["status"] == "completed"
    assert summary["summary"] == {"count_updated": 1, "count_failed": 1}
    assert Path(summary["summary_path"]).is_file()
    assert json.loads(Path(summary["summary_path"]).read_text())["targets"] == 2


def test_out_of_stock_update_keeps_id(tmp_path: Path, store: None) -> None:
    old_stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    original_id = db.upsert_product(Product(url="X", name="Widget", in_stock=True, updated_at=old_stamp))
    harness = Harness(tmp_path, {"X": [product_page("Widget", out_of_stock=True)]}, targets=["X"])

    harness.loop.run_cycle(1)

    record = db.get_product_by_url("X")
    assert record is not None
    assert record.in_stock is False
    assert record.id == original_id
    assert record.updated_at > old_stamp


def test_failure_leaves_previous_record_untouched(tmp_path: Path, store: None) -> None:
    old = Product(url="B", name="Old", in_stock=True, updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    db.upsert_product(old)
    calls: List[Product] = []

    def _spy(product: Product) -> int:
        calls.append(product)
        return db.upsert_product(product)

    harness = Harness(tmp_path, {"B": [_timeout_page(), FakePage()]}, targets=["B"], upsert=_spy)

    harness.loop.run_cycle(1)

    assert calls == []
    record = db.get_product_by_url("B")
    assert (record.name, record.in_stock, record.updated_at) == (old.name, old.in_stock, old.updated_at)


def test_diagnostic_failure_does_not_change_outcome(tmp_path: Path, store: None) -> None:
    # No page is prepared for the diagnostic session, so its navigation blows up.
    harness = Harness(tmp_path, {"B": [_timeout_page()]}, targets=["B"])

    summary = harness.loop.run_cycle(1)

    assert summary["summary"] == {"count_failed": 1}
    assert summary["entries"][0]["reason"] == "timeout"
    assert any("Failed to capture screenshot" in line for line in harness.lines)
    assert db.get_product_by_url("B") is None


def test_persistence_error_does_not_abort_cycle(tmp_path: Path, store: None) -> None:
    seen: List[str] = []

    def _flaky_upsert(product: Product) -> int:
        seen.append(product.url)
        if product.url == "A":
            raise db.PersistenceError("database is locked")
        return db.upsert_product(product)

    harness = Harness(
        tmp_path,
        {"A": [product_page("First")], "B": [product_page("Second")]},
        upsert=_flaky_upsert,
    )

    summary = harness.loop.run_cycle(1)

    assert seen == ["A", "B"]
    assert [p.url for p in db.list_products()] == ["B"]
    assert summary["summary"] == {"count_persist_failed": 1, "count_updated": 1}
    assert any(line.startswith("Database error for A") for line in harness.lines)


def test_unexpected_error_is_isolated_to_its_url(tmp_path: Path, store: None) -> None:
    harness = Harness(tmp_path, {"B": [product_page("Second")]})
    real_run_attempt = harness.loop.run_attempt

    def _run_attempt(url: str):
        if url == "A":
            raise RuntimeError("driver exploded")
        return real_run_attempt(url)

    harness.loop.run_attempt = _run_attempt

    summary = harness.loop.run_cycle(1)

    assert summary["summary"] == {"count_error": 1, "count_updated": 1}
    assert db.get_product_by_url("B") is not None
    # Pacing still runs after the failed URL.
    assert len(harness.sleeps) == 4


def test_session_error_becomes_failure(tmp_path: Path, store: None) -> None:
    harness = Harness(tmp_path, {}, targets=["A"], session_error=SessionError("no chromium"))

    result = harness.loop.run_attempt("A")

    assert result == AttemptFailure(url="A", reason="session_error", detail="no chromium")


def test_pacing_wraps_every_attempt(tmp_path: Path, store: None) -> None:
    harness = Harness(tmp_path, {"A": [product_page()], "B": [_timeout_page(), FakePage()]})

    harness.loop.run_cycle(1)

    assert len(harness.sleeps) == 4
    befores, afters = harness.sleeps[0::2], harness.sleeps[1::2]
    assert all(2 <= delay <= 7 for delay in befores)
    assert all(5 <= delay <= 15 for delay in afters)


def test_sessions_are_not_reused(tmp_path: Path, store: None) -> None:
    harness = Harness(tmp_path, {"A": [product_page()], "B": [product_page()]})

    harness.loop.run_cycle(1)

    assert len(harness.factory.sessions) == 2
    assert harness.factory.closed == 2


def test_urls_processed_in_loader_order(tmp_path: Path, store: None) -> None:
    urls = ["C", "A", "B"]
    harness = Harness(tmp_path, {u: [product_page(u)] for u in urls}, targets=urls)

    harness.loop.run_cycle(1)

    visited = [line.split(": ", 1)[1] for line in harness.lines if line.startswith("Navigating to: ")]
    assert visited == urls
    assert [p.url for p in db.list_products()] == urls


def test_load_error_aborts_only_the_cycle(tmp_path: Path, store: None) -> None:
    def _failing_loader(source, logger=None):
        raise LoadError("Unable to read target list urls.json")

    harness = Harness(tmp_path, {}, target_loader=_failing_loader)

    summary = harness.loop.run_cycle(3)

    assert summary["status"] == "aborted"
    assert summary["cycle_index"] == 3
    assert harness.sleeps == []
    assert any(line.startswith("Error in scrape cycle") for line in harness.lines)


def test_run_forever_retries_after_load_error(tmp_path: Path, store: None) -> None:
    attempts: List[int] = []

    def _loader(source, logger=None):
        attempts.append(1)
        if len(attempts) == 1:
            raise LoadError("temporarily missing")
        harness.stop_event.set()
        return []

    harness = Harness(tmp_path, {}, target_loader=_loader)
    waits: List[float] = []
    harness.stop_event.wait = lambda timeout=None: waits.append(timeout) or False

    cycles = harness.loop.run_forever(run_once=False, cycle_interval=0, load_retry_seconds=30)

    assert cycles == 2
    assert waits == [30]


def test_run_once_stops_after_one_cycle(tmp_path: Path, store: None) -> None:
    harness = Harness(tmp_path, {"A": [product_page()], "B": [product_page()]})

    assert harness.loop.run_forever(run_once=True) == 1
    assert len(db.list_products()) == 2


def test_stop_event_is_checked_between_urls(tmp_path: Path, store: None) -> None:
    harness = Harness(tmp_path, {"A": [product_page()], "B": [product_page()]})
    original_upsert = harness.loop.upsert

    def _upsert_then_stop(product: Product) -> int:
        harness.loop.stop()
        return original_upsert(product)

    harness.loop.upsert = _upsert_then_stop

    summary = harness.loop.run_cycle(1)

    assert summary["status"] == "stopped"
    assert [p.url for p in db.list_products()] == ["A"]
    assert harness.loop.run_forever() == 0


def test_attempt_result_types(tmp_path: Path, store: None) -> None:
    harness = Harness(tmp_path, {"A": [product_page("Widget", image="https://cdn.example/w.png")]})

    result = harness.loop.run_attempt("A")

    assert result == AttemptSuccess(url="A", name="Widget", in_stock=True, image_url="https://cdn.example/w.png")


def test_empty_target_list_idles_between_cycles(tmp_path: Path, store: None) -> None:
    calls: List[int] = []

    def _loader(source, logger=None):
        calls.append(1)
        if len(calls) == 3:
            harness.stop_event.set()
        return []

    harness = Harness(tmp_path, {}, target_loader=_loader)
    waits: List[float] = []
    harness.stop_event.wait = lambda timeout=None: waits.append(timeout) or False

    cycles = harness.loop.run_forever(run_once=False, cycle_interval=0, load_retry_seconds=30)

    assert cycles == 3
    assert waits == [30, 30]


def test_non_empty_cycles_follow_the_cycle_interval(tmp_path: Path, store: None) -> None:
    def _loader(source, logger=None):
        return ["A"]

    harness = Harness(tmp_path, {"A": [product_page(), product_page()]}, target_loader=_loader)
    waits: List[float] = []

    def _wait(timeout=None):
        waits.append(timeout)
        if len(waits) == 2:
            harness.stop_event.set()
        return False

    harness.stop_event.wait = _wait

    cycles = harness.loop.run_forever(run_once=False, cycle_interval=5, load_retry_seconds=30)

    assert cycles == 2
    assert waits == [5, 5]

"""Configuration constants for the product stock scraper."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Tuple

DATA_DIR: Path = Path(os.getenv("STOCKWATCH_DATA_DIR", "/app/data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "scraper.log"
SCREENSHOT_DIR: Path = DATA_DIR / "screenshots"
RUNS_DIR: Path = DATA_DIR / "runs"
DB_PATH: Path = DATA_DIR / "stockwatch.db"

# Path to a JSON array of URLs, or an http(s) URL serving one.
TARGETS_SOURCE: str = os.getenv("STOCKWATCH_TARGETS", "urls.json")


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


def _parse_range(env_var: str, default: Tuple[float, float]) -> Tuple[float, float]:
    """Parse a ``low,high`` pair of seconds, falling back to ``default``."""

    raw = os.getenv(env_var, "")
    if not raw.strip():
        return default
    try:
        low, high = (float(part) for part in raw.split(","))
    except ValueError:
        return default
    return (low, high)


# Per-attempt budget covering navigation, structural wait and extraction.
ATTEMPT_TIMEOUT_SECONDS: int = _parse_timeout_seconds("STOCKWATCH_ATTEMPT_TIMEOUT_SECONDS", 60)
# Budget for the secondary screenshot session after a failed attempt.
DIAGNOSTIC_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "STOCKWATCH_DIAGNOSTIC_TIMEOUT_SECONDS", 10
)
# Upper bound (ms) for checking whether one extraction selector is present.
FIELD_CHECK_TIMEOUT_MS: int = max(1, int(os.getenv("STOCKWATCH_FIELD_CHECK_TIMEOUT_MS", "500")))

# Randomised pacing (seconds) applied before and after every attempt.
PACING_BEFORE_RANGE: Tuple[float, float] = _parse_range("STOCKWATCH_PACING_BEFORE", (2.0, 7.0))
PACING_AFTER_RANGE: Tuple[float, float] = _parse_range("STOCKWATCH_PACING_AFTER", (5.0, 15.0))

RUN_ONCE: bool = os.getenv("STOCKWATCH_RUN_ONCE", "0").strip().lower() not in {"0", "false", ""}
CYCLE_INTERVAL_SECONDS: float = float(os.getenv("STOCKWATCH_CYCLE_INTERVAL_SECONDS", "0"))
# Wait before retrying a cycle whose target list could not be loaded.
# Also used as the idle wait after a cycle with an empty target list.
LOAD_RETRY_SECONDS: float = float(os.getenv("STOCKWATCH_LOAD_RETRY_SECONDS", "30"))
# Number of runs/cycle_*.json summaries kept on disk.
CYCLE_SUMMARIES_KEEP_MAX: int = int(os.getenv("STOCKWATCH_CYCLE_SUMMARIES_KEEP_MAX", "50"))

API_HOST: str = os.getenv("STOCKWATCH_API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("PORT", "8080"))

MIN_FREE_MB: int = int(os.getenv("MIN_FREE_MB", "100"))

HEADLESS: bool = os.getenv("STOCKWATCH_HEADLESS", "1").strip().lower() not in {"0", "false"}

USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

BROWSER_ARGS: Tuple[str, ...] = (
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--disable-extensions",
    "--no-first-run",
    "--no-default-browser-check",
    "--ignore-certificate-errors",
    "--blink-settings=imagesEnabled=false",
)

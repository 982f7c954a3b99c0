from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "tests"]


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    """

    if config.MIN_FREE_MB < 0:
        _raise_config_error(
            "MIN_FREE_MB must be non-negative.",
            entrypoint=entrypoint,
            error="min_free_mb_invalid",
        )

    timeout_fields = [
        ("ATTEMPT_TIMEOUT_SECONDS", config.ATTEMPT_TIMEOUT_SECONDS),
        ("DIAGNOSTIC_TIMEOUT_SECONDS", config.DIAGNOSTIC_TIMEOUT_SECONDS),
    ]

    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    pacing_fields = [
        ("PACING_BEFORE_RANGE", config.PACING_BEFORE_RANGE),
        ("PACING_AFTER_RANGE", config.PACING_AFTER_RANGE),
    ]

    for field_name, (low, high) in pacing_fields:
        if low < 0 or high < low:
            _raise_config_error(
                f"{field_name} must satisfy 0 <= low <= high (got {low}, {high}).",
                entrypoint=entrypoint,
                error="invalid_pacing_range",
            )

    if config.CYCLE_SUMMARIES_KEEP_MAX < 1:
        _raise_config_error(
            "CYCLE_SUMMARIES_KEEP_MAX must be at least 1.",
            entrypoint=entrypoint,
            error="invalid_retention",
        )

    if config.CYCLE_INTERVAL_SECONDS < 0 or config.LOAD_RETRY_SECONDS < 0:
        _raise_config_error(
            "CYCLE_INTERVAL_SECONDS and LOAD_RETRY_SECONDS must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_interval",
        )


__all__ = ["validate_runtime_config", "Entrypoint"]

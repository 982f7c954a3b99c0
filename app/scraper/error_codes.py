from __future__ import annotations

"""Centralised error code taxonomy for scraper failures.

These codes appear as the ``reason`` of failed attempts and in structured
logs so that the log stream explains why a URL was not refreshed. The
taxonomy is intentionally small and should stay stable for log consumers.
"""


class ErrorCode:
    NAVIGATION = "navigation"
    TIMEOUT = "timeout"
    SESSION = "session_error"
    LOAD = "load_error"
    PERSISTENCE = "persistence_error"
    DIAGNOSTIC = "diagnostic_error"
    INTERNAL = "internal_error"


class ScraperError(Exception):
    """Base class for errors carrying an :class:`ErrorCode`."""

    error_code: str = ErrorCode.INTERNAL

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code


__all__ = ["ErrorCode", "ScraperError"]

"""Load the ordered list of product URLs scraped each cycle."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Union

import requests

from . import config
from .error_codes import ErrorCode, ScraperError
from .utils import log_line

TargetSource = Union[str, Path, Sequence[str]]


class LoadError(ScraperError):
    error_code = ErrorCode.LOAD


def build_http_session() -> requests.Session:
    """Return a requests session configured for target list fetches."""

    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": config.USER_AGENT,
            "Accept": "application/json, */*;q=0.8",
        }
    )
    return session


def _is_remote(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


def _read_remote(url: str, session: Optional[requests.Session]) -> Any:
    http_session = session or build_http_session()
    try:
        response = http_session.get(url, timeout=(10, 30))
        response.raise_for_status()
    except requests.RequestException as exc:
        raise LoadError(f"Unable to fetch target list from {url}: {exc}") from exc
    try:
        return response.json()
    except ValueError as exc:
        raise LoadError(f"Target list at {url} is not valid JSON: {exc}") from exc


def _read_file(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise LoadError(f"Unable to read target list {path}: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise LoadError(f"Target list {path} is not valid JSON: {exc}") from exc


def _normalise_entries(
    payload: Any, *, origin: str, logger: Callable[[str], None]
) -> List[str]:
    if not isinstance(payload, list):
        raise LoadError(f"Target list {origin} must be a JSON array of URLs")

    urls: List[str] = []
    seen: set[str] = set()
    for index, entry in enumerate(payload):
        if not isinstance(entry, str):
            raise LoadError(f"Target list {origin} has an invalid entry at index {index}: {entry!r}")
        url = entry.strip()
        if not url:
            logger(f"[TARGETS] Skipping blank entry at index {index} in {origin}")
            continue
        if url in seen:
            logger(f"[TARGETS] Skipping duplicate URL {url}")
            continue
        seen.add(url)
        urls.append(url)
    return urls


def load_targets(
    source: TargetSource,
    *,
    session: Optional[requests.Session] = None,
    logger: Optional[Callable[[str], None]] = None,
) -> List[str]:
    """Return the URLs named by ``source`` in their original order.

    ``source`` is either an in-memory sequence of URLs, a path to a JSON file
    containing an array of URL strings, or an ``http(s)`` URL serving such an
    array. Raises :class:`LoadError` when the resource is missing or
    malformed.
    """

    log = logger or log_line

    if isinstance(source, Path):
        return _normalise_entries(_read_file(source), origin=str(source), logger=log)

    if isinstance(source, str):
        if _is_remote(source):
            return _normalise_entries(_read_remote(source, session), origin=source, logger=log)
        return _normalise_entries(_read_file(Path(source)), origin=source, logger=log)

    return _normalise_entries(list(source), origin="<static list>", logger=log)


__all__ = ["LoadError", "TargetSource", "build_http_session", "load_targets"]

from __future__ import annotations

from typing import Any, Callable, Optional

from .utils import log_line

LogSink = Callable[[str], None]


def _scraper_event(
    label: str = "",
    *,
    phase: str | None = None,
    sink: Optional[LogSink] = None,
    **fields: Any,
) -> None:
    """Emit a structured scraper log line.

    ``phase`` may be used as a keyword alias for the label. When both
    ``label`` and ``phase`` are provided, ``phase`` is emitted as part of the
    payload so the caller still captures the event stage. ``sink`` overrides
    the default :func:`log_line` writer so components can route their events
    to an injected logger.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{k}={repr(v)}" for k, v in sorted(fields.items()))
        (sink or log_line)(f"[SCRAPER][{phase_label.upper()}] {payload}")
    except Exception:
        # Never let logging break the scraper.
        return


__all__ = ["_scraper_event", "LogSink"]

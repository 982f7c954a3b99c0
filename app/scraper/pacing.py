from __future__ import annotations

import random
import time
from typing import Any, Callable, Optional, Tuple

from . import config
from .logging_utils import _scraper_event
from .utils import log_line


class PacingPolicy:
    """Randomised delays around every attempt.

    The distributions are fixed: a failed attempt is followed by the same
    delay range as a successful one. ``sleep`` is injectable so the loop can
    pass an interruptible wait (``threading.Event.wait``).
    """

    def __init__(
        self,
        before_range: Tuple[float, float] = config.PACING_BEFORE_RANGE,
        after_range: Tuple[float, float] = config.PACING_AFTER_RANGE,
        *,
        sleep: Callable[[float], Any] = time.sleep,
        rng: Optional[random.Random] = None,
        logger: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.before_range = before_range
        self.after_range = after_range
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._log = logger or log_line

    def _delay(self, bounds: Tuple[float, float], kind: str) -> float:
        low, high = bounds
        delay = self._rng.uniform(low, high)
        _scraper_event("pacing", kind=kind, delay=round(delay, 2), sink=self._log)
        self._sleep(delay)
        return delay

    def before_attempt(self) -> float:
        return self._delay(self.before_range, "before_attempt")

    def after_attempt(self) -> float:
        return self._delay(self.after_range, "after_attempt")


__all__ = ["PacingPolicy"]

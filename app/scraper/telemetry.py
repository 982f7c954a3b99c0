"""Per-cycle outcome counters written next to the logs."""

from __future__ import annotations

import json
import time
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


class CycleTelemetry:
    """Collect attempt outcomes for one pass over the target list."""

    def __init__(
        self,
        cycle_index: int,
        runs_dir: Optional[Path] = None,
        keep_max: int = config.CYCLE_SUMMARIES_KEEP_MAX,
    ) -> None:
        self.cycle_id = f"{_ts()}_{uuid.uuid4().hex[:8]}"
        self.cycle_index = cycle_index
        self.runs_dir = runs_dir
        self.keep_max = keep_max
        self.started_at = time.time()
        self.entries: List[Dict[str, Any]] = []
        self.summary: Dict[str, int] = defaultdict(int)

    def add(self, url: str, status: str, reason: str = "", **meta: Any) -> None:
        self.entries.append(
            {
                "url": url,
                "status": status,
                "reason": reason,
                **meta,
            }
        )
        self.summary[f"count_{status}"] += 1

    def snapshot(self) -> Dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "cycle_index": self.cycle_index,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "summary": dict(self.summary),
            "entries": list(self.entries),
        }

    def finalize(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        payload = {**self.snapshot(), **(extra or {})}
        runs_dir = self.runs_dir or config.RUNS_DIR
        runs_dir.mkdir(parents=True, exist_ok=True)
        path = runs_dir / f"cycle_{self.cycle_id}.json"
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
        prune_old_summaries(runs_dir, keep=self.keep_max, current=path)
        return path


def prune_old_summaries(runs_dir: Path, *, keep: int, current: Optional[Path] = None) -> None:
    """Delete the oldest ``cycle_*.json`` files so at most ``keep`` remain.

    ``current`` is never removed, even when several summaries share an mtime.
    """

    files = sorted(
        (p for p in runs_dir.glob("cycle_*.json") if p != current),
        key=lambda p: (p.stat().st_mtime_ns, p.name),
    )
    keep_others = max(0, keep - (1 if current is not None else 0))
    while len(files) > keep_others:
        old = files.pop(0)
        try:
            old.unlink()
        except OSError:
            continue


__all__ = ["CycleTelemetry", "prune_old_summaries"]

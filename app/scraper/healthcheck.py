"""Readiness checks shared by ``/api/health`` and the command line."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from . import config, db
from .config_validation import validate_runtime_config
from .logging_utils import _scraper_event
from .utils import disk_has_room, ensure_dirs, log_line


@dataclass
class HealthResult:
    ok: bool
    checks: dict[str, dict[str, Any]]


def _check_config(entrypoint: str) -> dict[str, Any]:
    try:
        validate_runtime_config(entrypoint or "cli")
    except ValueError as exc:
        return {"ok": False, "error": str(exc)}
    return {"ok": True}


def _check_storage() -> dict[str, Any]:
    """Data, screenshot and runs directories exist and the disk has room."""

    try:
        ensure_dirs()
    except OSError as exc:
        return {"ok": False, "error": str(exc)}
    return {
        "ok": disk_has_room(config.MIN_FREE_MB, config.DATA_DIR),
        "data_dir": str(config.DATA_DIR),
        "screenshot_dir": str(config.SCREENSHOT_DIR),
        "min_free_mb": config.MIN_FREE_MB,
    }


def _check_products_store() -> dict[str, Any]:
    try:
        db.initialize_schema()
        stats = db.product_stats()
    except Exception as exc:  # noqa: BLE001
        return {"ok": False, "error": str(exc)}
    return {"ok": True, **stats}


def run_health_checks(entrypoint: str = "cli") -> HealthResult:
    checks = {
        "config": _check_config(entrypoint),
        "filesystem": _check_storage(),
        "database": _check_products_store(),
    }
    overall_ok = all(check.get("ok", False) for check in checks.values())

    _scraper_event(
        "state" if overall_ok else "error",
        phase="health",
        ok=overall_ok,
        failed=sorted(name for name, check in checks.items() if not check.get("ok")),
    )
    return HealthResult(ok=overall_ok, checks=checks)


if __name__ == "__main__":  # pragma: no cover
    result = run_health_checks(entrypoint="cli")
    for name, info in result.checks.items():
        log_line(f"[HEALTH] {name}: {'OK' if info.get('ok') else 'FAIL'} {info}")
    raise SystemExit(0 if result.ok else 1)

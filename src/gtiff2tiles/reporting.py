"""Run report construction."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from gtiff2tiles.config import RunConfiguration
from gtiff2tiles.contracts import SCHEMA_VERSION, validate_run_report
from gtiff2tiles.engine import RunResult


def _utc_now() -> str:
    """Return the current UTC timestamp as ISO8601."""
    return datetime.now(timezone.utc).isoformat()


def build_run_report(config: RunConfiguration, result: RunResult) -> dict[str, Any]:
    """Create a schema-valid report dictionary for a finished run."""
    report: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "created_at": _utc_now(),
        "status": result.status.value,
        "elapsed_seconds": round(result.elapsed_seconds, 6),
        "config": config.as_dict(),
        "source": {"path": str(result.source_path), "repaired": result.repaired},
        "tiles": {
            "total": result.total,
            "completed": result.completed,
            "written": result.written,
            "failed": len(result.tile_errors),
            "per_zoom": {str(z): count for z, count in result.per_zoom.items()},
        },
        "errors": [
            {"tile": str(failure.coordinate), "message": failure.message}
            for failure in result.tile_errors
        ],
    }
    if result.performance:
        report["performance"] = result.performance
    validate_run_report(report)
    return report


def write_run_report(path: Path, report: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2), encoding="utf-8")

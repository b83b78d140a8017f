"""Timing helpers for tiling runs."""

from __future__ import annotations

import json
import os
import tracemalloc
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Any, Iterator

PROFILE_DIR_ENV = "GTIFF2TILES_PROFILE_DIR"
METRICS_FILE_NAME = "run_metrics.json"


@dataclass(frozen=True)
class PerfSpan:
    """One measured span of work."""

    name: str
    seconds: float


class PerfTracker:
    """Capture named timing spans and an optional Python memory peak.

    Spans may be opened from several threads; totals are only read once the
    run is over.
    """

    def __init__(self, *, enabled: bool, track_memory: bool = False) -> None:
        self.enabled = enabled
        self.track_memory = track_memory
        self._spans: list[PerfSpan] = []
        self._start_time: float | None = None
        self._end_time: float | None = None
        self._peak_memory: float | None = None
        self._mem_started = False

    def start(self) -> None:
        """Start the session clock."""
        if not self.enabled or self._start_time is not None:
            return
        self._start_time = perf_counter()
        if self.track_memory and not tracemalloc.is_tracing():
            tracemalloc.start()
            self._mem_started = True

    def stop(self) -> None:
        """Stop the session clock and record the memory peak."""
        if not self.enabled or self._end_time is not None:
            return
        self._end_time = perf_counter()
        if self.track_memory and tracemalloc.is_tracing():
            _, peak = tracemalloc.get_traced_memory()
            self._peak_memory = peak / (1024 * 1024)
            if self._mem_started:
                tracemalloc.stop()

    @contextmanager
    def span(self, name: str) -> Iterator[None]:
        """Measure a named span of work."""
        if not self.enabled:
            yield
            return
        start = perf_counter()
        try:
            yield
        finally:
            self._spans.append(PerfSpan(name=name, seconds=perf_counter() - start))

    def summary(self) -> dict[str, Any]:
        """Return a JSON-serializable summary of captured spans."""
        if not self.enabled:
            return {}
        totals: dict[str, float] = {}
        counts: dict[str, int] = {}
        for span in self._spans:
            totals[span.name] = totals.get(span.name, 0.0) + span.seconds
            counts[span.name] = counts.get(span.name, 0) + 1
        total_seconds = 0.0
        if self._start_time is not None and self._end_time is not None:
            total_seconds = max(0.0, self._end_time - self._start_time)
        summary: dict[str, Any] = {
            "total_seconds": round(total_seconds, 6),
            "spans": {
                name: {"seconds": round(total, 6), "count": counts[name]}
                for name, total in sorted(totals.items())
            },
        }
        if self._peak_memory is not None:
            summary["peak_memory_mb"] = round(self._peak_memory, 3)
        return summary


def resolve_metrics_path(metrics_json: str | None) -> Path | None:
    """Resolve the metrics output path from the CLI or the environment."""
    if metrics_json:
        return Path(metrics_json)
    profile_dir = os.environ.get(PROFILE_DIR_ENV)
    if profile_dir:
        return Path(profile_dir) / METRICS_FILE_NAME
    return None


def write_metrics(path: Path, summary: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary, indent=2), encoding="utf-8")

"""Run a complete tiling job: prepare the source, plan, dispatch, collect."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from time import perf_counter
from typing import Any, Mapping

from gtiff2tiles.config import RunConfiguration
from gtiff2tiles.errors import InputError, RepairError, UnreadableRasterError
from gtiff2tiles.perf import PerfTracker
from gtiff2tiles.raster import get_resampling, open_raster, probe, repair
from gtiff2tiles.raster.crs import transform_bounds
from gtiff2tiles.raster.models import Bounds
from gtiff2tiles.scheduler import (
    ProgressSink,
    ProgressTracker,
    TileScheduler,
    count_jobs,
    plan_waves,
)
from gtiff2tiles.tiles import (
    TileContext,
    TileCoordinate,
    TileGrid,
    TileJob,
    TileProfile,
    TileWriter,
    execute_job,
    get_algorithm,
    get_profile,
    tile_grid_for,
)

LOGGER = logging.getLogger(__name__)


class RunStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TileFailure:
    """A tile that could not be produced, and why."""

    coordinate: TileCoordinate
    message: str


@dataclass(frozen=True)
class RunResult:
    """Summary of a finished (or cancelled) run."""

    status: RunStatus
    total: int
    completed: int
    written: int
    tile_errors: tuple[TileFailure, ...]
    elapsed_seconds: float
    source_path: Path
    repaired: bool
    per_zoom: Mapping[int, int] = field(default_factory=dict)
    performance: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED and not self.tile_errors


def prepare_source(
    config: RunConfiguration,
    profile: TileProfile,
    perf: PerfTracker,
) -> tuple[Path, bool]:
    """Return the raster to tile and whether it had to be repaired."""
    with perf.span("probe"):
        result = probe(config.input_path, profile)
    if result.ok:
        LOGGER.debug("Source %s can be tiled as-is", config.input_path)
        return config.input_path, False

    LOGGER.info("Source %s needs repair: %s", config.input_path, result.reason)
    if not config.repair:
        raise UnreadableRasterError(
            f"{config.input_path} cannot be tiled as-is ({result.reason}) and repair is disabled."
        )
    try:
        with perf.span("repair"):
            repaired = repair(
                config.input_path,
                config.temp_dir,
                profile,
                resampling=get_resampling(config.resampling),
            )
    except RepairError as exc:
        if not result.readable:
            raise UnreadableRasterError(
                f"Cannot read or repair {config.input_path}: {result.reason}"
            ) from exc
        raise
    return repaired, True


def zoom_grids(
    bounds: Bounds,
    min_zoom: int,
    max_zoom: int,
    profile: TileProfile,
) -> dict[int, TileGrid]:
    """Return the tile grid of every zoom level the raster touches."""
    grids = {}
    for z in range(min_zoom, max_zoom + 1):
        grid = tile_grid_for(bounds, z, profile)
        if grid is not None:
            grids[z] = grid
    if not grids:
        raise InputError(f"Raster bounds {bounds} lie outside the {profile.name} extent.")
    return grids


def run_tiling(
    config: RunConfiguration,
    *,
    progress: ProgressSink | None = None,
    cancel_event: threading.Event | None = None,
    perf: PerfTracker | None = None,
) -> RunResult:
    """Generate the tile pyramid described by ``config``.

    Configuration problems raise before anything is read or written. Per-tile
    failures are collected in the result; fatal errors propagate after the
    running jobs finish, leaving already written tiles in place.
    """
    config.validate()
    perf = perf or PerfTracker(enabled=False)
    profile = get_profile(config.profile)
    started = perf_counter()
    perf.start()
    LOGGER.info(
        "Tiling %s into %s (zoom %d-%d, %s, %d thread(s))",
        config.input_path,
        config.output_dir,
        config.min_zoom,
        config.max_zoom,
        config.algorithm,
        config.threads,
    )
    try:
        source, repaired = prepare_source(config, profile, perf)
        with open_raster(source, profile) as accessor:
            LOGGER.info(
                "Source extent (lon/lat): %.6f, %.6f, %.6f, %.6f",
                *transform_bounds(accessor.info.bounds, accessor.info.crs, "EPSG:4326"),
            )
            grids = zoom_grids(accessor.info.bounds, config.min_zoom, config.max_zoom, profile)
            algorithm = get_algorithm(config.algorithm)
            waves = plan_waves(algorithm, grids)
            total = count_jobs(waves)
            LOGGER.info("Planned %d tile(s) in %d wave(s)", total, len(waves))

            context = TileContext(
                accessor=accessor,
                writer=TileWriter(config.output_dir, config.tile_format),
                profile=profile,
                grids=grids,
                tile_size=config.tile_size,
                resampling=get_resampling(config.resampling),
            )
            tracker = ProgressTracker(total, progress)
            scheduler = TileScheduler(
                config.threads,
                progress=tracker,
                cancel_event=cancel_event,
                perf=perf,
            )

            def worker(job: TileJob) -> Path:
                return execute_job(algorithm, job, context)

            config.output_dir.mkdir(parents=True, exist_ok=True)
            tracker.start()
            failures: list[TileFailure] = []
            per_zoom: Counter[int] = Counter()
            for outcome in scheduler.iter_outcomes(waves, worker):
                if outcome.ok:
                    per_zoom[outcome.coordinate.z] += 1
                else:
                    failures.append(TileFailure(outcome.coordinate, outcome.error or ""))
    finally:
        perf.stop()

    completed = tracker.completed
    status = RunStatus.COMPLETED
    if completed < total and scheduler.cancelled:
        status = RunStatus.CANCELLED
    elapsed = perf_counter() - started
    result = RunResult(
        status=status,
        total=total,
        completed=completed,
        written=sum(per_zoom.values()),
        tile_errors=tuple(sorted(failures, key=lambda failure: failure.coordinate)),
        elapsed_seconds=elapsed,
        source_path=source,
        repaired=repaired,
        per_zoom=dict(sorted(per_zoom.items())),
        performance=perf.summary() if perf.enabled else None,
    )
    LOGGER.info(
        "Run %s: %d/%d tile(s), %d failed, %.2fs",
        status.value,
        completed,
        total,
        len(failures),
        elapsed,
    )
    return result

"""Command-line interface for gtiff2tiles."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from gtiff2tiles import __version__
from gtiff2tiles.config import (
    DEFAULT_MAX_ZOOM,
    DEFAULT_MIN_ZOOM,
    DEFAULT_THREADS,
    DEFAULT_TILE_SIZE,
    load_run_config,
    run_config_from_mapping,
)
from gtiff2tiles.engine import RunResult, RunStatus, run_tiling
from gtiff2tiles.errors import ConfigurationError, FatalRunError, InputError, RepairError
from gtiff2tiles.logging_utils import LogOptions, configure_logging
from gtiff2tiles.perf import PerfTracker, resolve_metrics_path, write_metrics
from gtiff2tiles.raster import RESAMPLING_METHODS
from gtiff2tiles.reporting import build_run_report, write_run_report
from gtiff2tiles.tiles import ALGORITHMS, PROFILES, TILE_FORMATS

LOGGER = logging.getLogger("gtiff2tiles.cli")

EXIT_OK = 0
EXIT_TILE_ERRORS = 1
EXIT_CONFIG_ERROR = 2
EXIT_INPUT_ERROR = 3
EXIT_CANCELLED = 130

TEMP_DIR_FORMAT = "%Y-%m-%d_%H-%M-%S-%f"

# CLI option name -> run config key
_OVERRIDES = {
    "input": "input_path",
    "output": "output_dir",
    "temp": "temp_dir",
    "min_zoom": "min_zoom",
    "max_zoom": "max_zoom",
    "algorithm": "algorithm",
    "threads": "threads",
    "tile_size": "tile_size",
    "tile_format": "tile_format",
    "resampling": "resampling",
    "profile": "profile",
    "repair": "repair",
}
_DEFAULTS = {
    "min_zoom": DEFAULT_MIN_ZOOM,
    "max_zoom": DEFAULT_MAX_ZOOM,
    "algorithm": "crop",
    "threads": DEFAULT_THREADS,
    "tile_size": DEFAULT_TILE_SIZE,
}


def format_elapsed(seconds: float) -> str:
    """Render a duration as days, hours, minutes, seconds and milliseconds."""
    milliseconds = int(round(max(seconds, 0.0) * 1000))
    days, milliseconds = divmod(milliseconds, 86_400_000)
    hours, milliseconds = divmod(milliseconds, 3_600_000)
    minutes, milliseconds = divmod(milliseconds, 60_000)
    secs, milliseconds = divmod(milliseconds, 1000)
    return (
        f"Days:{days} Hours:{hours} Minutes:{minutes} "
        f"Seconds:{secs} Milliseconds:{milliseconds}"
    )


def timestamped_temp_dir(root: Path, now: datetime | None = None) -> Path:
    """Return a per-run subdirectory of root named after the start time."""
    return Path(root) / (now or datetime.now()).strftime(TEMP_DIR_FORMAT)


def percent_logger() -> Callable[[float], None]:
    """Return a progress sink that logs each whole-percent step once."""
    last = -1

    def sink(fraction: float) -> None:
        nonlocal last
        percent = int(fraction * 100)
        if percent != last:
            last = percent
            LOGGER.info("Progress: %d%%", percent)

    return sink


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gtiff2tiles",
        description="Cut a georeferenced raster into a z/x/y tile pyramid.",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("input", nargs="?", help="Source raster (GeoTIFF).")
    parser.add_argument("output", nargs="?", help="Empty output directory for tiles.")
    parser.add_argument(
        "--temp",
        help="Directory for intermediate files; a timestamped subdirectory is used.",
    )
    parser.add_argument("--min-zoom", type=int, help=f"Lowest zoom (default {DEFAULT_MIN_ZOOM}).")
    parser.add_argument("--max-zoom", type=int, help=f"Highest zoom (default {DEFAULT_MAX_ZOOM}).")
    parser.add_argument(
        "--algorithm",
        type=str.lower,
        choices=tuple(ALGORITHMS),
        help="Tiling algorithm (default crop).",
    )
    parser.add_argument(
        "--threads",
        type=int,
        help=f"Worker threads (default {DEFAULT_THREADS}).",
    )
    parser.add_argument(
        "--tile-size",
        type=int,
        help=f"Tile edge in pixels (default {DEFAULT_TILE_SIZE}).",
    )
    parser.add_argument(
        "--format",
        dest="tile_format",
        choices=tuple(TILE_FORMATS),
        help="Tile image format (default png).",
    )
    parser.add_argument(
        "--resampling",
        choices=tuple(RESAMPLING_METHODS),
        help="Resampling used for raster reads (default bilinear).",
    )
    parser.add_argument(
        "--profile",
        choices=tuple(PROFILES),
        help="Tiling profile (default mercator).",
    )
    parser.add_argument(
        "--no-repair",
        dest="repair",
        action="store_false",
        default=None,
        help="Fail instead of rewriting rasters that cannot be tiled as-is.",
    )
    parser.add_argument("--config", help="JSON run config; command-line flags win.")
    parser.add_argument("--report", help="Write a JSON run report to this path.")
    parser.add_argument(
        "--profile-timings",
        action="store_true",
        help="Collect timing spans and include them in the report.",
    )
    parser.add_argument(
        "--profile-memory",
        action="store_true",
        help="Also record the peak Python memory use (implies --profile-timings).",
    )
    parser.add_argument(
        "--metrics-json",
        help="Write timing metrics to this path (implies --profile-timings).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (repeatable).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Reduce log output to warnings and errors.",
    )
    parser.add_argument("--log-json", action="store_true", help="Emit logs as JSON on stderr.")
    parser.add_argument("--log-file", help="Optional path for JSON log output.")
    return parser


def _config_payload(args: argparse.Namespace) -> dict[str, Any]:
    """Merge config file values, CLI flags and defaults."""
    payload: dict[str, Any] = load_run_config(Path(args.config)) if args.config else {}
    for option, key in _OVERRIDES.items():
        value = getattr(args, option, None)
        if value is not None:
            payload[key] = value
    for key, value in _DEFAULTS.items():
        payload.setdefault(key, value)
    if payload.get("temp_dir"):
        payload["temp_dir"] = str(timestamped_temp_dir(Path(payload["temp_dir"])))
    return payload


def _install_sigint(cancel_event: threading.Event) -> Callable[[], None]:
    """Route Ctrl+C to the cancel event; return a function restoring the old handler."""
    if threading.current_thread() is not threading.main_thread():
        return lambda: None

    def handler(signum: int, frame: object) -> None:
        LOGGER.warning("Interrupted; finishing running tiles before stopping.")
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, handler)
    return lambda: signal.signal(signal.SIGINT, previous)


def _exit_code(result: RunResult) -> int:
    if result.status is RunStatus.CANCELLED:
        LOGGER.warning("Run cancelled after %d of %d tile(s).", result.completed, result.total)
        return EXIT_CANCELLED
    if result.tile_errors:
        LOGGER.error("%d tile(s) failed.", len(result.tile_errors))
        return EXIT_TILE_ERRORS
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Run the CLI entrypoint and return an exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(
        LogOptions(
            verbose=args.verbose or 0,
            quiet=bool(args.quiet),
            log_file=Path(args.log_file) if args.log_file else None,
            json_console=bool(args.log_json),
        )
    )

    try:
        config = run_config_from_mapping(_config_payload(args))
    except ConfigurationError as exc:
        for problem in exc.problems:
            LOGGER.error(problem)
        return EXIT_CONFIG_ERROR

    metrics_path = resolve_metrics_path(args.metrics_json)
    perf = PerfTracker(
        enabled=bool(args.profile_timings or args.profile_memory or metrics_path),
        track_memory=args.profile_memory,
    )
    cancel_event = threading.Event()
    restore_sigint = _install_sigint(cancel_event)
    try:
        result = run_tiling(
            config,
            progress=percent_logger(),
            cancel_event=cancel_event,
            perf=perf,
        )
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG_ERROR
    except (InputError, RepairError, FatalRunError) as exc:
        LOGGER.error("%s", exc)
        return EXIT_INPUT_ERROR
    finally:
        restore_sigint()

    if args.report:
        write_run_report(Path(args.report), build_run_report(config, result))
        LOGGER.info("Wrote run report to %s", args.report)
    if metrics_path and result.performance:
        write_metrics(metrics_path, result.performance)
        LOGGER.info("Wrote timing metrics to %s", metrics_path)

    code = _exit_code(result)
    if code == EXIT_OK:
        print(f"Elapsed time: {format_elapsed(result.elapsed_seconds)}")
    return code

"""Run configuration loading and validation."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import jsonschema

from gtiff2tiles.contracts import validate_run_config
from gtiff2tiles.errors import ConfigurationError
from gtiff2tiles.raster.accessor import RESAMPLING_METHODS
from gtiff2tiles.tiles import ALGORITHMS, PROFILES, TILE_FORMATS

DEFAULT_MIN_ZOOM = 0
DEFAULT_MAX_ZOOM = 17
DEFAULT_THREADS = 5
DEFAULT_TILE_SIZE = 256

PATH_KEYS = ("input_path", "output_dir", "temp_dir")


@dataclass(frozen=True)
class RunConfiguration:
    """Immutable parameters for one tiling run."""

    input_path: Path
    output_dir: Path
    temp_dir: Path
    min_zoom: int = DEFAULT_MIN_ZOOM
    max_zoom: int = DEFAULT_MAX_ZOOM
    algorithm: str = "crop"
    threads: int = DEFAULT_THREADS
    tile_size: int = DEFAULT_TILE_SIZE
    tile_format: str = "png"
    resampling: str = "bilinear"
    profile: str = "mercator"
    repair: bool = True

    def problems(self) -> list[str]:
        """Return every validation problem; empty when the config is usable."""
        problems = []
        for key in PATH_KEYS:
            # Path("") collapses to Path(".")
            if str(getattr(self, key)).strip() in ("", "."):
                problems.append(f"{key} is empty.")
        paths_set = not problems
        if self.min_zoom < 0:
            problems.append("Minimum zoom is less than 0.")
        if self.max_zoom < 0:
            problems.append("Maximum zoom is less than 0.")
        if self.max_zoom < self.min_zoom:
            problems.append("Minimum zoom is greater than maximum zoom.")
        if self.algorithm not in ALGORITHMS:
            problems.append(f"Algorithm '{self.algorithm}' is not supported.")
        if self.threads < 1:
            problems.append("Thread count must be at least 1.")
        if self.tile_size < 2 or self.tile_size & (self.tile_size - 1):
            problems.append("Tile size must be a power of two of at least 2.")
        if self.tile_format not in TILE_FORMATS:
            problems.append(f"Tile format '{self.tile_format}' is not supported.")
        if self.resampling not in RESAMPLING_METHODS:
            problems.append(f"Resampling method '{self.resampling}' is not supported.")
        if self.profile not in PROFILES:
            problems.append(f"Tiling profile '{self.profile}' is not supported.")
        if paths_set and self.output_dir.exists():
            if not self.output_dir.is_dir():
                problems.append(f"Output path is not a directory: {self.output_dir}")
            elif any(self.output_dir.iterdir()):
                problems.append(f"Output directory is not empty: {self.output_dir}")
        if paths_set and self.temp_dir.exists() and not self.temp_dir.is_dir():
            problems.append(f"Temp path is not a directory: {self.temp_dir}")
        return problems

    def validate(self) -> None:
        """Raise ConfigurationError listing every problem found."""
        problems = self.problems()
        if problems:
            raise ConfigurationError(problems)

    def as_dict(self) -> dict[str, Any]:
        return {
            "input_path": str(self.input_path),
            "output_dir": str(self.output_dir),
            "temp_dir": str(self.temp_dir),
            "min_zoom": self.min_zoom,
            "max_zoom": self.max_zoom,
            "algorithm": self.algorithm,
            "threads": self.threads,
            "tile_size": self.tile_size,
            "tile_format": self.tile_format,
            "resampling": self.resampling,
            "profile": self.profile,
            "repair": self.repair,
        }


def _coerce_int(payload: Mapping[str, Any], key: str, default: int, problems: list[str]) -> int:
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        problems.append(f"{key} must be an integer.")
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        problems.append(f"{key} must be an integer.")
        return default


def run_config_from_mapping(payload: Mapping[str, Any]) -> RunConfiguration:
    """Build and validate a RunConfiguration from loosely typed values."""
    problems: list[str] = []
    paths: dict[str, Path] = {}
    for key in PATH_KEYS:
        value = payload.get(key)
        if value is None or not str(value).strip():
            problems.append(f"{key} is empty.")
        else:
            paths[key] = Path(str(value))
    min_zoom = _coerce_int(payload, "min_zoom", DEFAULT_MIN_ZOOM, problems)
    max_zoom = _coerce_int(payload, "max_zoom", DEFAULT_MAX_ZOOM, problems)
    threads = _coerce_int(payload, "threads", DEFAULT_THREADS, problems)
    tile_size = _coerce_int(payload, "tile_size", DEFAULT_TILE_SIZE, problems)
    algorithm = str(payload.get("algorithm") or "").strip().lower()
    if not algorithm:
        problems.append("Algorithm is not set.")
    if problems:
        raise ConfigurationError(problems)

    config = RunConfiguration(
        input_path=paths["input_path"],
        output_dir=paths["output_dir"],
        temp_dir=paths["temp_dir"],
        min_zoom=min_zoom,
        max_zoom=max_zoom,
        algorithm=algorithm,
        threads=threads,
        tile_size=tile_size,
        tile_format=str(payload.get("tile_format") or "png").lower(),
        resampling=str(payload.get("resampling") or "bilinear").lower(),
        profile=str(payload.get("profile") or "mercator").lower(),
        repair=bool(payload.get("repair", True)),
    )
    config.validate()
    return config


def load_run_config(path: Path) -> dict[str, Any]:
    """Load and schema-check a JSON run config file."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read run config {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError("Run config must be a JSON object.")
    try:
        validate_run_config(payload)
    except jsonschema.ValidationError as exc:
        raise ConfigurationError(f"Invalid run config {path}: {exc.message}") from exc
    payload.pop("schema_version", None)
    return payload

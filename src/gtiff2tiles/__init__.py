"""Cut georeferenced rasters into XYZ tile pyramids."""

from __future__ import annotations

from gtiff2tiles.config import RunConfiguration, load_run_config, run_config_from_mapping
from gtiff2tiles.engine import RunResult, RunStatus, TileFailure, run_tiling

__version__ = "0.1.0"

__all__ = [
    "RunConfiguration",
    "RunResult",
    "RunStatus",
    "TileFailure",
    "__version__",
    "load_run_config",
    "run_config_from_mapping",
    "run_tiling",
]

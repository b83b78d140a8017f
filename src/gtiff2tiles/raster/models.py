"""Data models describing opened and probed rasters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Tuple

from rasterio.transform import Affine

Bounds = Tuple[float, float, float, float]
Resolution = Tuple[float, float]


@dataclass(frozen=True)
class RasterInfo:
    """Metadata for a raster opened for tiling."""

    path: Path
    crs: str
    bounds: Bounds
    width: int
    height: int
    transform: Affine
    count: int
    dtype: str
    resolution: Resolution


class ProbeStatus(str, Enum):
    """Outcome of checking whether a raster can be tiled as-is."""

    OK = "ok"
    NEEDS_REPAIR = "needs_repair"


@dataclass(frozen=True)
class ProbeResult:
    """Probe outcome with the reason repair is required, if any."""

    path: Path
    status: ProbeStatus
    reason: str | None = None
    readable: bool = True

    @property
    def ok(self) -> bool:
        return self.status is ProbeStatus.OK

"""Shared job types and the protocol implemented by tiling algorithms."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Mapping, Protocol

import numpy as np
from rasterio.enums import Resampling

from gtiff2tiles.tiles.grid import TileCoordinate, TileGrid, TileProfile
from gtiff2tiles.tiles.writer import TileWriter

if TYPE_CHECKING:
    from gtiff2tiles.raster.accessor import RasterAccessor


class JobSource(str, Enum):
    """Where a job gets its pixels from."""

    RASTER = "raster"
    CHILDREN = "children"


@dataclass(frozen=True)
class TileJob:
    """One tile to materialize."""

    coordinate: TileCoordinate
    source: JobSource


@dataclass(frozen=True)
class Wave:
    """Jobs that may run in any order; waves run strictly one after another.

    Jobs are produced lazily from the grids, zoom by zoom, so a wave never
    holds more than its grid bounds in memory.
    """

    label: str
    grids: tuple[TileGrid, ...]
    source: JobSource

    def __len__(self) -> int:
        return sum(len(grid) for grid in self.grids)

    def __iter__(self) -> Iterator[TileJob]:
        for grid in self.grids:
            for coordinate in grid:
                yield TileJob(coordinate, self.source)


@dataclass(frozen=True)
class TileContext:
    """Run-wide collaborators shared by every job."""

    accessor: RasterAccessor
    writer: TileWriter
    profile: TileProfile
    grids: Mapping[int, TileGrid]
    tile_size: int = 256
    resampling: Resampling = Resampling.bilinear


class TileAlgorithm(Protocol):
    """Protocol implemented by the crop and join algorithms."""

    name: str

    def waves(self, grids: Mapping[int, TileGrid]) -> list[Wave]:
        ...

    def render(self, job: TileJob, context: TileContext) -> np.ndarray:
        ...


def execute_job(algorithm: TileAlgorithm, job: TileJob, context: TileContext) -> Path:
    """Render a job and write its tile."""
    buffer = algorithm.render(job, context)
    return context.writer.write(job.coordinate, buffer)

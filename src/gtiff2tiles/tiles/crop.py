"""Crop algorithm: resample every zoom level directly from the source raster."""

from __future__ import annotations

from typing import Mapping

import numpy as np

from gtiff2tiles.tiles.base import JobSource, TileContext, TileJob, Wave
from gtiff2tiles.tiles.grid import TileCoordinate, TileGrid, tile_bounds


def render_from_raster(coordinate: TileCoordinate, context: TileContext) -> np.ndarray:
    """Read the tile footprint from the raster at tile resolution."""
    return context.accessor.read_window(
        tile_bounds(coordinate, context.profile),
        tile_size=context.tile_size,
        resampling=context.resampling,
        tile=coordinate,
    )


class CropAlgorithm:
    """Every tile of every zoom is an independent raster read."""

    name = "crop"

    def waves(self, grids: Mapping[int, TileGrid]) -> list[Wave]:
        if not grids:
            return []
        ordered = tuple(grids[z] for z in sorted(grids))
        return [Wave(label="crop", grids=ordered, source=JobSource.RASTER)]

    def render(self, job: TileJob, context: TileContext) -> np.ndarray:
        return render_from_raster(job.coordinate, context)

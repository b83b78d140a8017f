"""Join algorithm: build coarse zoom levels from already written child tiles.

The finest requested zoom is read from the source raster exactly like the crop
algorithm. Every coarser level is composed from its four children one level
down, each reduced to a quarter with an alpha-weighted 2x2 box filter, so the
source raster is read only once. Children that are missing or unreadable leave
their quadrant transparent.
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

import numpy as np

from gtiff2tiles.tiles.base import JobSource, TileContext, TileJob, Wave
from gtiff2tiles.tiles.crop import render_from_raster
from gtiff2tiles.tiles.grid import TileGrid, children_of

LOGGER = logging.getLogger(__name__)


def downsample(rgba: np.ndarray) -> np.ndarray:
    """Halve a (4, n, n) RGBA buffer with an alpha-weighted 2x2 box filter."""
    bands, height, width = rgba.shape
    if bands != 4 or height % 2 or width % 2:
        raise ValueError(f"Cannot downsample buffer of shape {rgba.shape}")
    blocks = rgba.astype(np.uint32).reshape(4, height // 2, 2, width // 2, 2)
    alpha = blocks[3]
    alpha_sum = alpha.sum(axis=(1, 3))
    color_sum = (blocks[:3] * alpha[np.newaxis]).sum(axis=(2, 4))
    safe = np.maximum(alpha_sum, 1)
    color = (color_sum + safe // 2) // safe
    color[:, alpha_sum == 0] = 0
    out = np.empty((4, height // 2, width // 2), dtype=np.uint8)
    out[:3] = color
    out[3] = (alpha_sum + 2) // 4
    return out


def compose_children(children: Sequence[np.ndarray | None], tile_size: int) -> np.ndarray:
    """Paste four downsampled children into their quadrants of a parent tile.

    Children are ordered top-left, top-right, bottom-left, bottom-right; a
    ``None`` child leaves its quadrant transparent.
    """
    half = tile_size // 2
    parent = np.zeros((4, tile_size, tile_size), dtype=np.uint8)
    offsets = ((0, 0), (0, half), (half, 0), (half, half))
    for child, (row, col) in zip(children, offsets):
        if child is None:
            continue
        parent[:, row : row + half, col : col + half] = downsample(child)
    return parent


class JoinAlgorithm:
    """Finest zoom from the raster, coarser zooms from their children."""

    name = "join"

    def waves(self, grids: Mapping[int, TileGrid]) -> list[Wave]:
        if not grids:
            return []
        finest = max(grids)
        waves = []
        for z in sorted(grids, reverse=True):
            source = JobSource.RASTER if z == finest else JobSource.CHILDREN
            waves.append(Wave(label=f"zoom {z}", grids=(grids[z],), source=source))
        return waves

    def render(self, job: TileJob, context: TileContext) -> np.ndarray:
        if job.source is JobSource.RASTER:
            return render_from_raster(job.coordinate, context)

        child_grid = context.grids.get(job.coordinate.z + 1)
        expected = (4, context.tile_size, context.tile_size)
        children: list[np.ndarray | None] = []
        for child in children_of(job.coordinate):
            if child_grid is None or child not in child_grid:
                children.append(None)
                continue
            data = context.writer.read(child)
            if data is None:
                LOGGER.debug("Child tile %s missing; quadrant left empty", child)
            elif data.shape != expected:
                LOGGER.warning(
                    "Child tile %s has shape %s, expected %s",
                    child,
                    data.shape,
                    expected,
                    extra={"tile": str(job.coordinate)},
                )
                data = None
            children.append(data)
        return compose_children(children, context.tile_size)

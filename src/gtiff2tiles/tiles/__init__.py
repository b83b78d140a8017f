"""Tile math, tiling algorithms, and tile output."""

from __future__ import annotations

from typing import Callable

from gtiff2tiles.tiles.base import JobSource, TileAlgorithm, TileContext, TileJob, Wave, execute_job
from gtiff2tiles.tiles.crop import CropAlgorithm
from gtiff2tiles.tiles.grid import (
    GEODETIC,
    MERCATOR,
    PROFILES,
    TileCoordinate,
    TileGrid,
    TileProfile,
    children_of,
    get_profile,
    parent_of,
    tile_bounds,
    tile_grid_for,
)
from gtiff2tiles.tiles.join import JoinAlgorithm
from gtiff2tiles.tiles.writer import TILE_FORMATS, TileWriter

AlgorithmFactory = Callable[[], TileAlgorithm]

ALGORITHMS: dict[str, AlgorithmFactory] = {
    "crop": CropAlgorithm,
    "join": JoinAlgorithm,
}


def get_algorithm(name: str) -> TileAlgorithm:
    """Return a tiling algorithm instance by name."""
    try:
        factory = ALGORITHMS[name]
    except KeyError as exc:
        raise KeyError(f"Unknown algorithm: {name}") from exc
    return factory()


__all__ = [
    "ALGORITHMS",
    "CropAlgorithm",
    "GEODETIC",
    "JobSource",
    "JoinAlgorithm",
    "MERCATOR",
    "PROFILES",
    "TILE_FORMATS",
    "TileAlgorithm",
    "TileContext",
    "TileCoordinate",
    "TileGrid",
    "TileJob",
    "TileProfile",
    "TileWriter",
    "Wave",
    "children_of",
    "execute_job",
    "get_algorithm",
    "get_profile",
    "parent_of",
    "tile_bounds",
    "tile_grid_for",
]

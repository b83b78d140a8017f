"""Tile index math for power-of-two slippy-map pyramids."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator, Tuple

Bounds = Tuple[float, float, float, float]

# Tolerance, in tile units, for raster edges that sit on a tile boundary.
_EDGE_EPSILON = 1e-9


@dataclass(frozen=True)
class TileProfile:
    """A tiling scheme: CRS plus the full square-indexed map extent."""

    name: str
    crs: str
    extent: Bounds

    def tile_span(self, z: int) -> tuple[float, float]:
        """Return the (width, height) of one tile at zoom z in CRS units."""
        count = 2**z
        min_x, min_y, max_x, max_y = self.extent
        return (max_x - min_x) / count, (max_y - min_y) / count


_ORIGIN_SHIFT = 2 * math.pi * 6378137 / 2.0

MERCATOR = TileProfile(
    name="mercator",
    crs="EPSG:3857",
    extent=(-_ORIGIN_SHIFT, -_ORIGIN_SHIFT, _ORIGIN_SHIFT, _ORIGIN_SHIFT),
)
GEODETIC = TileProfile(
    name="geodetic",
    crs="EPSG:4326",
    extent=(-180.0, -90.0, 180.0, 90.0),
)

PROFILES: dict[str, TileProfile] = {
    MERCATOR.name: MERCATOR,
    GEODETIC.name: GEODETIC,
}


def get_profile(name: str) -> TileProfile:
    """Return a built-in tiling profile by name."""
    try:
        return PROFILES[name]
    except KeyError as exc:
        raise ValueError(f"Unknown tiling profile: {name}") from exc


@dataclass(frozen=True, order=True)
class TileCoordinate:
    """A tile address; zoom z has 2**z columns and 2**z rows."""

    z: int
    x: int
    y: int

    def __post_init__(self) -> None:
        if self.z < 0 or self.x < 0 or self.y < 0:
            raise ValueError(f"Tile indices must be non-negative: {self}")
        limit = 2**self.z
        if self.x >= limit or self.y >= limit:
            raise ValueError(f"Tile {self} is outside zoom {self.z}")

    def __str__(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"


@dataclass(frozen=True)
class TileGrid:
    """Inclusive tile index ranges covering an extent at one zoom level."""

    z: int
    x_min: int
    x_max: int
    y_min: int
    y_max: int

    @property
    def width(self) -> int:
        return self.x_max - self.x_min + 1

    @property
    def height(self) -> int:
        return self.y_max - self.y_min + 1

    def __len__(self) -> int:
        return self.width * self.height

    def __iter__(self) -> Iterator[TileCoordinate]:
        for x in range(self.x_min, self.x_max + 1):
            for y in range(self.y_min, self.y_max + 1):
                yield TileCoordinate(self.z, x, y)

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, TileCoordinate):
            return False
        return (
            item.z == self.z
            and self.x_min <= item.x <= self.x_max
            and self.y_min <= item.y <= self.y_max
        )


def tile_grid_for(bounds: Bounds, z: int, profile: TileProfile) -> TileGrid | None:
    """Return the tile range at zoom z covering bounds, or None if disjoint."""
    if z < 0:
        raise ValueError("Zoom level must be non-negative.")
    left, bottom, right, top = bounds
    min_x, min_y, max_x, max_y = profile.extent
    left, right = max(left, min_x), min(right, max_x)
    bottom, top = max(bottom, min_y), min(top, max_y)
    if left >= right or bottom >= top:
        return None

    span_x, span_y = profile.tile_span(z)
    last = 2**z - 1
    x_min = math.floor((left - min_x) / span_x + _EDGE_EPSILON)
    x_max = math.ceil((right - min_x) / span_x - _EDGE_EPSILON) - 1
    y_min = math.floor((max_y - top) / span_y + _EDGE_EPSILON)
    y_max = math.ceil((max_y - bottom) / span_y - _EDGE_EPSILON) - 1
    x_min, y_min = max(0, min(x_min, last)), max(0, min(y_min, last))
    x_max, y_max = max(x_min, min(x_max, last)), max(y_min, min(y_max, last))
    return TileGrid(z=z, x_min=x_min, x_max=x_max, y_min=y_min, y_max=y_max)


def tile_bounds(coordinate: TileCoordinate, profile: TileProfile) -> Bounds:
    """Return the (left, bottom, right, top) footprint of a tile."""
    span_x, span_y = profile.tile_span(coordinate.z)
    min_x, _, _, max_y = profile.extent
    left = min_x + coordinate.x * span_x
    top = max_y - coordinate.y * span_y
    return (left, top - span_y, left + span_x, top)


def children_of(coordinate: TileCoordinate) -> tuple[TileCoordinate, ...]:
    """Return the four children in top-left, top-right, bottom-left, bottom-right order."""
    z, x, y = coordinate.z + 1, coordinate.x * 2, coordinate.y * 2
    return (
        TileCoordinate(z, x, y),
        TileCoordinate(z, x + 1, y),
        TileCoordinate(z, x, y + 1),
        TileCoordinate(z, x + 1, y + 1),
    )


def parent_of(coordinate: TileCoordinate) -> TileCoordinate:
    """Return the tile one zoom level up that contains this tile."""
    if coordinate.z == 0:
        raise ValueError("Zoom 0 tiles have no parent.")
    return TileCoordinate(coordinate.z - 1, coordinate.x // 2, coordinate.y // 2)

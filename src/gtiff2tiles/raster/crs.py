"""CRS normalization and transformation helpers."""

from __future__ import annotations

from typing import Tuple

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

Bounds = Tuple[float, float, float, float]


def normalize_crs(value: str | CRS) -> CRS:
    """Normalize CRS input into a pyproj CRS object."""
    return CRS.from_user_input(value)


def crs_matches(value: str | CRS | None, target: str | CRS) -> bool:
    """Return True when value describes the same CRS as target."""
    if value is None:
        return False
    try:
        return normalize_crs(value).equals(normalize_crs(target), ignore_axis_order=True)
    except CRSError:
        return False


def transformer(src: str | CRS, dst: str | CRS) -> Transformer:
    """Return a transformer that respects lon/lat axis order."""
    return Transformer.from_crs(normalize_crs(src), normalize_crs(dst), always_xy=True)


def transform_bounds(
    bounds: Bounds,
    src: str | CRS,
    dst: str | CRS,
    *,
    densify_pts: int = 21,
) -> Bounds:
    """Transform bounding coordinates between CRSs."""
    minx, miny, maxx, maxy = bounds
    tx = transformer(src, dst)
    return tx.transform_bounds(minx, miny, maxx, maxy, densify_pts=densify_pts)

from __future__ import annotations

from pathlib import Path
from typing import Tuple

import numpy as np
import rasterio
from rasterio.transform import from_bounds

from gtiff2tiles.config import RunConfiguration
from gtiff2tiles.tiles import MERCATOR

MERCATOR_EXTENT = MERCATOR.extent
HALF = MERCATOR.extent[2]


def write_raster(
    path: Path,
    data: np.ndarray,
    *,
    bounds: Tuple[float, float, float, float],
    crs: str | None = "EPSG:4326",
    nodata: float | None = None,
    **profile,
) -> None:
    """Write a (rows, cols) or (bands, rows, cols) array as a GeoTIFF."""
    if data.ndim == 2:
        data = data[np.newaxis]
    count, height, width = data.shape
    transform = from_bounds(*bounds, width=width, height=height)
    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=count,
        dtype=data.dtype,
        crs=crs,
        transform=transform,
        nodata=nodata,
        **profile,
    ) as dataset:
        dataset.write(data)


def uniform_rgb(size: int, color: Tuple[int, int, int] = (200, 100, 50)) -> np.ndarray:
    """Return a (3, size, size) uint8 array filled with one colour."""
    data = np.empty((3, size, size), dtype=np.uint8)
    for band, value in enumerate(color):
        data[band] = value
    return data


def gradient_rgb(size: int) -> np.ndarray:
    """Return a (3, size, size) uint8 array with distinct per-pixel values."""
    rows, cols = np.mgrid[0:size, 0:size]
    return np.stack(
        [
            (cols * 255 // max(size - 1, 1)).astype(np.uint8),
            (rows * 255 // max(size - 1, 1)).astype(np.uint8),
            ((rows + cols) % 256).astype(np.uint8),
        ]
    )


def mercator_raster(
    path: Path,
    data: np.ndarray,
    bounds: Tuple[float, float, float, float] = MERCATOR_EXTENT,
    **kwargs,
) -> Path:
    write_raster(path, data, bounds=bounds, crs="EPSG:3857", **kwargs)
    return path


def make_config(tmp_path: Path, source: Path, **overrides) -> RunConfiguration:
    """Return a RunConfiguration writing into fresh directories under tmp_path."""
    values = {
        "input_path": source,
        "output_dir": tmp_path / "tiles",
        "temp_dir": tmp_path / "temp",
        "min_zoom": 0,
        "max_zoom": 1,
        "algorithm": "crop",
        "threads": 2,
    }
    values.update(overrides)
    return RunConfiguration(**values)


def tile_files(root: Path) -> list[str]:
    """Return z/x/y.ext paths of every tile below root, sorted."""
    if not root.exists():
        return []
    return sorted(path.relative_to(root).as_posix() for path in root.rglob("*") if path.is_file())

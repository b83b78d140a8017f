"""Windowed, thread-safe access to the source raster."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
import rasterio
from rasterio.enums import ColorInterp, Resampling
from rasterio.errors import RasterioError, RasterioIOError
from rasterio.windows import from_bounds

from gtiff2tiles.errors import RasterHandleLostError, TileReadError, UnreadableRasterError
from gtiff2tiles.raster.crs import crs_matches
from gtiff2tiles.raster.models import Bounds, RasterInfo

if TYPE_CHECKING:
    from gtiff2tiles.tiles.grid import TileProfile

LOGGER = logging.getLogger(__name__)

RESAMPLING_METHODS: dict[str, Resampling] = {
    "nearest": Resampling.nearest,
    "bilinear": Resampling.bilinear,
    "cubic": Resampling.cubic,
    "average": Resampling.average,
    "lanczos": Resampling.lanczos,
}


def get_resampling(method: str) -> Resampling:
    """Convert a resampling method name to the rasterio enum."""
    try:
        return RESAMPLING_METHODS[method]
    except KeyError as exc:
        raise ValueError(
            f"Unknown resampling method: {method}. "
            f"Valid options: {', '.join(RESAMPLING_METHODS)}"
        ) from exc


def describe_raster(dataset: Any, path: Path) -> RasterInfo:
    """Collect tiling metadata from an open dataset."""
    if dataset.crs is None:
        raise UnreadableRasterError(f"Raster has no coordinate reference system: {path}")
    if dataset.transform.is_identity:
        raise UnreadableRasterError(f"Raster has no geotransform: {path}")
    bounds = dataset.bounds
    return RasterInfo(
        path=path,
        crs=dataset.crs.to_string(),
        bounds=(bounds.left, bounds.bottom, bounds.right, bounds.top),
        width=dataset.width,
        height=dataset.height,
        transform=dataset.transform,
        count=dataset.count,
        dtype=dataset.dtypes[0],
        resolution=(abs(dataset.res[0]), abs(dataset.res[1])),
    )


def band_layout(dataset: Any) -> tuple[tuple[int, ...], int | None]:
    """Return (colour band indexes, alpha band index) for a dataset."""
    alpha = None
    for index, interp in enumerate(dataset.colorinterp, start=1):
        if interp == ColorInterp.alpha:
            alpha = index
            break
    count = dataset.count
    if alpha is None:
        if count == 2:
            alpha = 2
        elif count >= 4:
            alpha = 4
    if count < 3:
        return (1,), alpha
    return (1, 2, 3), alpha


def _intersection(a: Bounds, b: Bounds) -> Bounds | None:
    left, bottom = max(a[0], b[0]), max(a[1], b[1])
    right, top = min(a[2], b[2]), min(a[3], b[3])
    if left >= right or bottom >= top:
        return None
    return (left, bottom, right, top)


class RasterAccessor:
    """Read resampled tile windows from a raster, one handle per thread."""

    def __init__(
        self,
        info: RasterInfo,
        *,
        color_bands: tuple[int, ...],
        alpha_band: int | None,
    ) -> None:
        self.info = info
        self._color_bands = color_bands
        self._alpha_band = alpha_band
        self._local = threading.local()
        self._lock = threading.Lock()
        self._handles: list[Any] = []
        self._closed = False

    def __enter__(self) -> "RasterAccessor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def adopt(self, dataset: Any) -> None:
        """Register an already open dataset as the calling thread's handle."""
        with self._lock:
            self._handles.append(dataset)
        self._local.dataset = dataset

    def _dataset(self) -> Any:
        if self._closed:
            raise RasterHandleLostError(f"Raster accessor is closed: {self.info.path}")
        dataset = getattr(self._local, "dataset", None)
        if dataset is None:
            try:
                dataset = rasterio.open(self.info.path)
            except RasterioIOError as exc:
                raise RasterHandleLostError(
                    f"Cannot reopen source raster {self.info.path}: {exc}"
                ) from exc
            self.adopt(dataset)
        return dataset

    def read_window(
        self,
        bounds: Bounds,
        *,
        tile_size: int = 256,
        resampling: Resampling = Resampling.bilinear,
        tile: object | None = None,
    ) -> np.ndarray:
        """Return a (4, tile_size, tile_size) RGBA uint8 buffer covering bounds.

        Only the part of ``bounds`` that overlaps the raster is read; the rest
        of the buffer is transparent no-data.
        """
        buffer = np.zeros((4, tile_size, tile_size), dtype=np.uint8)
        overlap = _intersection(bounds, self.info.bounds)
        if overlap is None:
            return buffer

        left, bottom, right, top = bounds
        res_x = (right - left) / tile_size
        res_y = (top - bottom) / tile_size
        col_start = int(round((overlap[0] - left) / res_x))
        col_stop = int(round((overlap[2] - left) / res_x))
        row_start = int(round((top - overlap[3]) / res_y))
        row_stop = int(round((top - overlap[1]) / res_y))
        width = col_stop - col_start
        height = row_stop - row_start
        if width <= 0 or height <= 0:
            return buffer

        window = from_bounds(*overlap, transform=self.info.transform)
        dataset = self._dataset()
        try:
            color = dataset.read(
                list(self._color_bands),
                window=window,
                out_shape=(len(self._color_bands), height, width),
                resampling=resampling,
            )
            if self._alpha_band is not None:
                mask = dataset.read(
                    self._alpha_band,
                    window=window,
                    out_shape=(height, width),
                    resampling=Resampling.nearest,
                )
            else:
                mask = dataset.dataset_mask(window=window, out_shape=(height, width))
        except RasterioError as exc:
            if not self.info.path.exists():
                raise RasterHandleLostError(
                    f"Source raster disappeared: {self.info.path}"
                ) from exc
            raise TileReadError(tile or bounds, f"window read failed: {exc}") from exc

        if color.shape[0] == 1:
            color = np.repeat(color, 3, axis=0)
        valid = mask > 0
        region = buffer[:, row_start:row_stop, col_start:col_stop]
        region[:3] = np.where(valid, color, 0)
        region[3] = np.where(valid, mask, 0)
        return buffer

    def close(self) -> None:
        """Close every handle opened by any worker thread."""
        with self._lock:
            handles, self._handles = self._handles, []
            self._closed = True
        for dataset in handles:
            dataset.close()
        LOGGER.debug("Closed %d raster handle(s) for %s", len(handles), self.info.path)


def open_raster(path: Path, profile: TileProfile) -> RasterAccessor:
    """Open a raster for tiling under the given profile."""
    path = Path(path)
    if not path.is_file():
        raise UnreadableRasterError(f"Raster not found: {path}")
    try:
        dataset = rasterio.open(path)
    except RasterioIOError as exc:
        raise UnreadableRasterError(f"Cannot open raster {path}: {exc}") from exc
    try:
        info = describe_raster(dataset, path)
        if not crs_matches(info.crs, profile.crs):
            raise UnreadableRasterError(
                f"Raster CRS {info.crs} does not match the {profile.name} profile ({profile.crs})."
            )
        if info.dtype != "uint8":
            raise UnreadableRasterError(f"Raster data type {info.dtype} is not 8-bit: {path}")
        color_bands, alpha_band = band_layout(dataset)
    except Exception:
        dataset.close()
        raise
    accessor = RasterAccessor(info, color_bands=color_bands, alpha_band=alpha_band)
    accessor.adopt(dataset)
    LOGGER.info(
        "Opened raster %s (%dx%d, %d band(s), %s)",
        path,
        info.width,
        info.height,
        info.count,
        info.crs,
    )
    return accessor

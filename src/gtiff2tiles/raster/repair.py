"""Probe source rasters and rewrite unusable ones into a canonical GeoTIFF."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.enums import ColorInterp, Resampling
from rasterio.errors import CRSError, RasterioError
from rasterio.vrt import WarpedVRT
from rasterio.warp import calculate_default_transform
from rasterio.windows import Window

from gtiff2tiles.errors import RepairError
from gtiff2tiles.raster.accessor import band_layout
from gtiff2tiles.raster.crs import crs_matches
from gtiff2tiles.raster.models import ProbeResult, ProbeStatus

if TYPE_CHECKING:
    from gtiff2tiles.tiles.grid import TileProfile

LOGGER = logging.getLogger(__name__)

REPAIR_FILE_NAME = "tmp.tif"
_SAMPLE_SIZE = 256
_STATS_MAX_DIM = 1024


def _sample_corners(dataset: Any) -> None:
    """Read the first and last pixels' blocks to catch truncated files."""
    width = min(dataset.width, _SAMPLE_SIZE)
    height = min(dataset.height, _SAMPLE_SIZE)
    dataset.read(1, window=Window(0, 0, width, height))
    dataset.read(
        dataset.count,
        window=Window(dataset.width - width, dataset.height - height, width, height),
    )


def probe(path: Path, profile: TileProfile) -> ProbeResult:
    """Report whether a raster can be tiled as-is under profile."""
    path = Path(path)
    if not path.is_file():
        return ProbeResult(path, ProbeStatus.NEEDS_REPAIR, "file not found", readable=False)
    try:
        with rasterio.open(path) as dataset:
            _sample_corners(dataset)
            crs = dataset.crs
            georeferenced = not dataset.transform.is_identity
            dtype = dataset.dtypes[0]
    except RasterioError as exc:
        return ProbeResult(
            path, ProbeStatus.NEEDS_REPAIR, f"not a readable raster: {exc}", readable=False
        )

    if crs is None:
        return ProbeResult(
            path, ProbeStatus.NEEDS_REPAIR, "no coordinate reference system", readable=False
        )
    if not georeferenced:
        return ProbeResult(path, ProbeStatus.NEEDS_REPAIR, "no geotransform", readable=False)
    if not crs_matches(crs, profile.crs):
        return ProbeResult(
            path,
            ProbeStatus.NEEDS_REPAIR,
            f"CRS {crs.to_string()} differs from {profile.crs}",
        )
    if dtype != "uint8":
        return ProbeResult(path, ProbeStatus.NEEDS_REPAIR, f"data type {dtype} is not 8-bit")
    return ProbeResult(path, ProbeStatus.OK)


def _band_ranges(dataset: Any, bands: Sequence[int]) -> list[tuple[float, float]]:
    """Return approximate (min, max) per band from a decimated read."""
    scale = min(1.0, _STATS_MAX_DIM / max(dataset.width, dataset.height))
    height = max(1, int(dataset.height * scale))
    width = max(1, int(dataset.width * scale))
    ranges = []
    for band in bands:
        data = dataset.read(band, out_shape=(height, width), masked=True)
        if np.issubdtype(data.dtype, np.floating):
            data = np.ma.masked_invalid(data)
        if data.count():
            ranges.append((float(data.min()), float(data.max())))
        else:
            ranges.append((0.0, 0.0))
    return ranges


def _to_byte(data: np.ndarray, ranges: Sequence[tuple[float, float]]) -> np.ndarray:
    """Linearly rescale each band into 0..255."""
    if data.dtype == np.uint8:
        return data
    out = np.zeros(data.shape, dtype=np.uint8)
    for index, (low, high) in enumerate(ranges):
        if high <= low:
            continue
        band = np.nan_to_num(data[index].astype(np.float64), nan=low)
        scaled = (band - low) * (255.0 / (high - low))
        out[index] = np.clip(np.rint(scaled), 0, 255).astype(np.uint8)
    return out


def repair(
    path: Path,
    temp_dir: Path,
    profile: TileProfile,
    *,
    resampling: Resampling = Resampling.bilinear,
) -> Path:
    """Reproject and rewrite a raster into temp_dir as an 8-bit tiled GeoTIFF."""
    path = Path(path)
    output_path = Path(temp_dir) / REPAIR_FILE_NAME
    dst_crs = CRS.from_user_input(profile.crs)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with rasterio.Env(OGR_CT_FORCE_TRADITIONAL_GIS_ORDER="YES"):
            with rasterio.open(path) as src:
                if src.crs is None:
                    raise RepairError(f"Cannot repair {path}: source has no CRS.")
                color_bands, alpha_band = band_layout(src)
                transform, width, height = calculate_default_transform(
                    src.crs, dst_crs, src.width, src.height, *src.bounds
                )
                ranges = _band_ranges(src, color_bands)
                add_alpha = alpha_band is None
                alpha_index = src.count + 1 if add_alpha else alpha_band
                meta = {
                    "driver": "GTiff",
                    "dtype": "uint8",
                    "count": len(color_bands) + 1,
                    "width": width,
                    "height": height,
                    "crs": dst_crs,
                    "transform": transform,
                    "tiled": True,
                    "blockxsize": 256,
                    "blockysize": 256,
                    "compress": "lzw",
                    "photometric": "RGB" if len(color_bands) == 3 else "MINISBLACK",
                    "BIGTIFF": "IF_SAFER",
                }
                with WarpedVRT(
                    src,
                    crs=dst_crs,
                    transform=transform,
                    width=width,
                    height=height,
                    resampling=resampling,
                    add_alpha=add_alpha,
                ) as vrt:
                    with rasterio.open(output_path, "w", **meta) as dest:
                        for _, window in dest.block_windows(1):
                            color = _to_byte(
                                vrt.read(list(color_bands), window=window), ranges
                            )
                            alpha = vrt.read(alpha_index, window=window)
                            if alpha.dtype != np.uint8:
                                alpha = np.where(alpha > 0, 255, 0).astype(np.uint8)
                            color[:, alpha == 0] = 0
                            band_count = len(color_bands)
                            dest.write(color, indexes=list(range(1, band_count + 1)), window=window)
                            dest.write(alpha, band_count + 1, window=window)
                        if len(color_bands) == 3:
                            interp = [ColorInterp.red, ColorInterp.green, ColorInterp.blue]
                        else:
                            interp = [ColorInterp.gray]
                        dest.colorinterp = interp + [ColorInterp.alpha]
    except (RasterioError, CRSError) as exc:
        raise RepairError(f"Failed to repair {path}: {exc}") from exc
    except OSError as exc:
        raise RepairError(f"Failed to write repaired raster {output_path}: {exc}") from exc
    LOGGER.info("Repaired %s into %s (%s)", path, output_path, profile.crs)
    return output_path

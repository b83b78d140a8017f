"""Source raster access, probing, and repair."""

from gtiff2tiles.raster.accessor import (
    RESAMPLING_METHODS,
    RasterAccessor,
    get_resampling,
    open_raster,
)
from gtiff2tiles.raster.models import ProbeResult, ProbeStatus, RasterInfo
from gtiff2tiles.raster.repair import REPAIR_FILE_NAME, probe, repair

__all__ = [
    "ProbeResult",
    "ProbeStatus",
    "REPAIR_FILE_NAME",
    "RESAMPLING_METHODS",
    "RasterAccessor",
    "RasterInfo",
    "get_resampling",
    "open_raster",
    "probe",
    "repair",
]

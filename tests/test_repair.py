from __future__ import annotations

import numpy as np
import pytest
import rasterio
from rasterio.enums import ColorInterp, Resampling

from gtiff2tiles.errors import RepairError
from gtiff2tiles.raster import REPAIR_FILE_NAME, ProbeStatus, open_raster, probe, repair
from gtiff2tiles.tiles import GEODETIC, MERCATOR
from tests.utils import mercator_raster, uniform_rgb, write_raster

ALPS = (8.0, 47.0, 9.0, 48.0)


def test_probe_accepts_canonical_raster(tmp_path) -> None:
    src = mercator_raster(tmp_path / "ok.tif", uniform_rgb(16))
    result = probe(src, MERCATOR)
    assert result.ok
    assert result.status is ProbeStatus.OK


def test_probe_flags_other_crs(tmp_path) -> None:
    src = tmp_path / "geo.tif"
    write_raster(src, uniform_rgb(16), bounds=ALPS)
    result = probe(src, MERCATOR)
    assert result.status is ProbeStatus.NEEDS_REPAIR
    assert result.readable
    assert "EPSG:4326" in result.reason
    assert probe(src, GEODETIC).ok


def test_probe_flags_non_byte_data(tmp_path) -> None:
    src = mercator_raster(tmp_path / "float.tif", np.ones((8, 8), dtype=np.float32))
    result = probe(src, MERCATOR)
    assert not result.ok
    assert "8-bit" in result.reason


def test_probe_flags_missing_crs(tmp_path) -> None:
    src = tmp_path / "nocrs.tif"
    write_raster(src, uniform_rgb(8), bounds=ALPS, crs=None)
    result = probe(src, MERCATOR)
    assert not result.ok
    assert not result.readable


def test_probe_flags_garbage_and_truncated(tmp_path) -> None:
    garbage = tmp_path / "garbage.tif"
    garbage.write_bytes(b"not a tiff at all")
    assert not probe(garbage, MERCATOR).readable

    src = mercator_raster(tmp_path / "full.tif", uniform_rgb(64))
    truncated = tmp_path / "truncated.tif"
    truncated.write_bytes(src.read_bytes()[:64])
    result = probe(truncated, MERCATOR)
    assert result.status is ProbeStatus.NEEDS_REPAIR
    assert not result.readable

    assert not probe(tmp_path / "missing.tif", MERCATOR).readable


def test_repair_reprojects_rgb(tmp_path) -> None:
    src = tmp_path / "geo.tif"
    write_raster(src, uniform_rgb(32), bounds=ALPS)
    temp_dir = tmp_path / "temp" / "run"

    repaired = repair(src, temp_dir, MERCATOR)

    assert repaired == temp_dir / REPAIR_FILE_NAME
    with rasterio.open(repaired) as dataset:
        assert dataset.crs.to_epsg() == 3857
        assert dataset.count == 4
        assert dataset.dtypes[0] == "uint8"
        assert dataset.colorinterp[3] == ColorInterp.alpha
        alpha = dataset.read(4)
        color = dataset.read(1)
    assert alpha.max() == 255
    assert np.median(color[alpha == 255]) == 200
    assert probe(repaired, MERCATOR).ok
    open_raster(repaired, MERCATOR).close()


def test_repair_rescales_float_to_byte(tmp_path) -> None:
    data = np.linspace(-10.0, 10.0, 64, dtype=np.float32).reshape(8, 8)
    src = mercator_raster(tmp_path / "float.tif", data, bounds=(0.0, 0.0, 8000.0, 8000.0))

    repaired = repair(src, tmp_path / "temp", MERCATOR, resampling=Resampling.nearest)

    with rasterio.open(repaired) as dataset:
        assert dataset.count == 2
        assert dataset.dtypes == ("uint8", "uint8")
        grey = dataset.read(1)
        alpha = dataset.read(2)
    valid = grey[alpha == 255]
    assert valid.min() < 20
    assert valid.max() > 235


def test_repair_wraps_read_errors(tmp_path) -> None:
    garbage = tmp_path / "garbage.tif"
    garbage.write_bytes(b"not a tiff at all")
    with pytest.raises(RepairError):
        repair(garbage, tmp_path / "temp", MERCATOR)

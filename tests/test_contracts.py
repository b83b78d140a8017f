from __future__ import annotations

import jsonschema
import pytest

from gtiff2tiles.contracts import SCHEMA_VERSION, validate_run_config, validate_run_report
from gtiff2tiles.engine import RunStatus, run_tiling
from gtiff2tiles.errors import TileWriteError
from gtiff2tiles.perf import PerfTracker
from gtiff2tiles.reporting import build_run_report, write_run_report
from gtiff2tiles.tiles import TileCoordinate, TileWriter
from tests.utils import make_config, mercator_raster, uniform_rgb


def test_run_config_schema() -> None:
    validate_run_config({"algorithm": "join", "threads": 3, "repair": False})
    with pytest.raises(jsonschema.ValidationError):
        validate_run_config({"threads": "3"})
    with pytest.raises(jsonschema.ValidationError):
        validate_run_config({"tile_format": "gif"})


def test_run_report_schema_rejects_missing_fields() -> None:
    with pytest.raises(jsonschema.ValidationError):
        validate_run_report({"schema_version": SCHEMA_VERSION, "status": "completed"})


def test_build_run_report(tmp_path, monkeypatch) -> None:
    src = mercator_raster(tmp_path / "src.tif", uniform_rgb(64))
    config = make_config(tmp_path, src, max_zoom=1)
    original = TileWriter.write

    def flaky(self, coordinate, rgba):
        if coordinate == TileCoordinate(1, 1, 1):
            raise TileWriteError(coordinate, "injected")
        return original(self, coordinate, rgba)

    monkeypatch.setattr(TileWriter, "write", flaky)
    result = run_tiling(config, perf=PerfTracker(enabled=True))
    report = build_run_report(config, result)

    assert report["status"] == RunStatus.COMPLETED.value
    assert report["tiles"] == {
        "total": 5,
        "completed": 5,
        "written": 4,
        "failed": 1,
        "per_zoom": {"0": 1, "1": 3},
    }
    assert report["errors"][0]["tile"] == "1/1/1"
    assert report["source"] == {"path": str(src), "repaired": False}
    assert report["config"]["algorithm"] == "crop"
    assert "spans" in report["performance"]

    out = tmp_path / "reports" / "run.json"
    write_run_report(out, report)
    assert out.is_file()

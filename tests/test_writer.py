from __future__ import annotations

import errno

import numpy as np
import pytest
from PIL import Image

from gtiff2tiles.errors import DiskFullError, TileWriteError
from gtiff2tiles.tiles import TileCoordinate, TileWriter


def _rgba(size: int = 8, alpha: int = 255) -> np.ndarray:
    data = np.zeros((4, size, size), dtype=np.uint8)
    data[0] = 10
    data[1] = 20
    data[2] = 30
    data[3] = alpha
    return data


def test_path_layout(tmp_path) -> None:
    writer = TileWriter(tmp_path, "webp")
    assert writer.path_for(TileCoordinate(3, 5, 2)) == tmp_path / "3" / "5" / "2.webp"


def test_png_round_trip(tmp_path) -> None:
    writer = TileWriter(tmp_path)
    coordinate = TileCoordinate(2, 1, 3)
    path = writer.write(coordinate, _rgba())

    assert path.is_file()
    with Image.open(path) as image:
        assert image.mode == "RGBA"
        assert image.size == (8, 8)
    assert np.array_equal(writer.read(coordinate), _rgba())


def test_write_is_idempotent_on_directories(tmp_path) -> None:
    writer = TileWriter(tmp_path)
    writer.write(TileCoordinate(1, 0, 0), _rgba())
    writer.write(TileCoordinate(1, 0, 1), _rgba())
    assert sorted(p.name for p in (tmp_path / "1" / "0").iterdir()) == ["0.png", "1.png"]


def test_jpeg_is_composited_on_black(tmp_path) -> None:
    writer = TileWriter(tmp_path, "jpg")
    path = writer.write(TileCoordinate(0, 0, 0), _rgba(alpha=0))
    with Image.open(path) as image:
        assert image.mode == "RGB"
        assert max(image.getextrema()[0]) <= 2


def test_read_missing_or_corrupt_tile(tmp_path) -> None:
    writer = TileWriter(tmp_path)
    coordinate = TileCoordinate(1, 1, 1)
    assert writer.read(coordinate) is None

    path = writer.path_for(coordinate)
    path.parent.mkdir(parents=True)
    path.write_bytes(b"broken")
    assert writer.read(coordinate) is None


def test_unknown_format_rejected(tmp_path) -> None:
    with pytest.raises(ValueError, match="Unsupported tile format"):
        TileWriter(tmp_path, "gif")


def test_write_errors_are_per_tile(tmp_path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("file in the way", encoding="utf-8")
    writer = TileWriter(blocker)
    with pytest.raises(TileWriteError) as excinfo:
        writer.write(TileCoordinate(0, 0, 0), _rgba())
    assert excinfo.value.tile == TileCoordinate(0, 0, 0)


def test_disk_full_is_fatal(tmp_path, monkeypatch) -> None:
    def full(self, *args, **kwargs):
        raise OSError(errno.ENOSPC, "No space left on device")

    monkeypatch.setattr(Image.Image, "save", full)
    with pytest.raises(DiskFullError):
        TileWriter(tmp_path).write(TileCoordinate(0, 0, 0), _rgba())

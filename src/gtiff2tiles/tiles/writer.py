"""Encode tile buffers and persist them under output/{z}/{x}/{y}.<ext>."""

from __future__ import annotations

import errno
import logging
from pathlib import Path

import numpy as np
from PIL import Image

from gtiff2tiles.errors import DiskFullError, TileWriteError
from gtiff2tiles.tiles.grid import TileCoordinate

LOGGER = logging.getLogger(__name__)

TILE_FORMATS: dict[str, str] = {
    "png": "PNG",
    "jpg": "JPEG",
    "webp": "WEBP",
}
_SAVE_OPTIONS: dict[str, dict[str, object]] = {
    "png": {},
    "jpg": {"quality": 95},
    "webp": {"lossless": True},
}


class TileWriter:
    """Write and read back tiles in a fixed image format."""

    def __init__(self, output_dir: Path, tile_format: str = "png") -> None:
        if tile_format not in TILE_FORMATS:
            raise ValueError(
                f"Unsupported tile format: {tile_format}. "
                f"Valid options: {', '.join(TILE_FORMATS)}"
            )
        self.output_dir = Path(output_dir)
        self.tile_format = tile_format

    @property
    def extension(self) -> str:
        return self.tile_format

    def path_for(self, coordinate: TileCoordinate) -> Path:
        """Return the output path of a tile."""
        return (
            self.output_dir
            / str(coordinate.z)
            / str(coordinate.x)
            / f"{coordinate.y}.{self.extension}"
        )

    def _encode(self, rgba: np.ndarray) -> Image.Image:
        pixels = np.ascontiguousarray(np.moveaxis(rgba, 0, -1))
        image = Image.fromarray(pixels)
        if self.tile_format == "jpg":
            background = Image.new("RGB", image.size, (0, 0, 0))
            background.paste(image, mask=image.getchannel("A"))
            return background
        return image

    def write(self, coordinate: TileCoordinate, rgba: np.ndarray) -> Path:
        """Encode a (4, size, size) RGBA buffer and write it to disk."""
        path = self.path_for(coordinate)
        image = self._encode(rgba)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            image.save(
                path,
                format=TILE_FORMATS[self.tile_format],
                **_SAVE_OPTIONS[self.tile_format],
            )
        except OSError as exc:
            if exc.errno == errno.ENOSPC:
                raise DiskFullError(f"No space left writing {path}") from exc
            raise TileWriteError(coordinate, f"cannot write {path}: {exc}") from exc
        return path

    def read(self, coordinate: TileCoordinate) -> np.ndarray | None:
        """Decode an existing tile to a (4, size, size) RGBA buffer, or None."""
        path = self.path_for(coordinate)
        if not path.is_file():
            return None
        try:
            with Image.open(path) as image:
                pixels = np.asarray(image.convert("RGBA"))
        except OSError as exc:
            LOGGER.warning(
                "Unreadable tile %s: %s", path, exc, extra={"tile": str(coordinate)}
            )
            return None
        return np.moveaxis(pixels, -1, 0).copy()

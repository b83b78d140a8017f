"""Exception taxonomy for tiling runs."""

from __future__ import annotations

from typing import Iterable


class TilingError(Exception):
    """Base class for every error raised by the tiling engine."""


class ConfigurationError(TilingError, ValueError):
    """Run parameters are invalid; raised before any work starts."""

    def __init__(self, problems: Iterable[str] | str) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems = tuple(problems)
        super().__init__("; ".join(self.problems))


class InputError(TilingError):
    """The source raster cannot be used for tiling."""


class UnreadableRasterError(InputError):
    """The source raster is missing, corrupt, or lacks georeferencing."""


class RepairError(TilingError):
    """Rewriting the source raster into a canonical raster failed."""


class TileError(TilingError):
    """A single tile job failed; sibling jobs continue."""

    def __init__(self, tile: object, message: str) -> None:
        self.tile = tile
        super().__init__(f"{tile}: {message}")


class TileReadError(TileError):
    """Reading source pixels for a tile failed."""


class TileWriteError(TileError):
    """Encoding or writing a tile file failed."""


class FatalRunError(TilingError):
    """An error that aborts the whole run."""


class RasterHandleLostError(FatalRunError):
    """The source raster can no longer be read."""


class DiskFullError(FatalRunError):
    """The output filesystem ran out of space."""

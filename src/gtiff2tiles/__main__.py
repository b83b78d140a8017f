"""Module entrypoint for `python -m gtiff2tiles`."""

from __future__ import annotations

from gtiff2tiles.cli import main

if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = ROOT / "src"
for entry in (SRC_ROOT, ROOT):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))

import pytest  # noqa: E402

from gtiff2tiles.perf import PROFILE_DIR_ENV  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_profile_dir(monkeypatch) -> None:
    """Prevent a local metrics directory from bleeding into tests."""
    monkeypatch.delenv(PROFILE_DIR_ENV, raising=False)


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Undo handlers installed by configure_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)

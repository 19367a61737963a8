"""Test configuration ensuring the bot modules and test helpers are importable."""
from __future__ import annotations

import sys
from pathlib import Path


def _ensure_on_path(path: Path) -> None:
    """Add ``path`` to ``sys.path`` when missing."""

    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_tests_dir = Path(__file__).resolve().parent
_ensure_on_path(_tests_dir)
_ensure_on_path(_tests_dir.parent)

# tests/conftest.py
from pathlib import Path
from typing import Dict

import pytest


@pytest.fixture
def make_files(tmp_path):
    """Creates files under tmp_path from {relative path: text} and returns the resolved root."""
    def _make(files: Dict[str, str], root: Path = None) -> Path:
        base = (root or tmp_path).resolve()
        for rel, text in files.items():
            target = base / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        return base
    return _make

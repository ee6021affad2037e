"""Pytest configuration for the harvester test suite."""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep a developer's .env file and HARVESTER_* variables out of the tests."""

    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("HARVESTER_"):
            monkeypatch.delenv(key, raising=False)

"""Shared test fixtures for dbwatcher."""

from __future__ import annotations

import os
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep developer config (DBWATCHER_* env vars, ./dbwatcher.yaml) out of tests."""
    for key in list(os.environ):
        if key.startswith("DBWATCHER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)

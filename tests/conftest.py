# /tests/conftest.py
# MediaSync - shared pytest fixtures
# Copyright (c) 2026 MediaSync contributors
from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture()
def config_base(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.delenv("MEDIASYNC_BASE", raising=False)
    monkeypatch.setenv("CONFIG_BASE", str(tmp_path))
    return tmp_path

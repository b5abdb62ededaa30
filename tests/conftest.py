"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add the src directory to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_AGENT = FIXTURES_DIR / "fake_agent.py"

COMPLETION_SIGNAL = "<promise>COMPLETE</promise>"


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Temporary working directory for agent runs."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def fake_agent_argv() -> list[str]:
    """Command line launching the fake agent with the current interpreter."""
    return [sys.executable, str(FAKE_AGENT)]


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every AGENT_RELAY_* variable from the environment."""
    import os

    for key in list(os.environ):
        if key.startswith("AGENT_RELAY_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch

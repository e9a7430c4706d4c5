"""Root test configuration: session-level cleanup of runtime artifacts"""

import os
from pathlib import Path

import pytest


_PROJECT_ROOT = Path(__file__).parent.parent

_CLEANUP_FILES = ["mdsite.db", "test.db"]


@pytest.fixture(scope="session", autouse=True)
def cleanup_artifacts():
    """Remove DB files created in the project root during the test session."""
    yield
    for name in _CLEANUP_FILES:
        p = _PROJECT_ROOT / name
        if p.exists():
            p.unlink()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep MDSITE_* variables from the developer's shell out of every test."""
    for key in list(os.environ):
        if key.startswith("MDSITE_"):
            monkeypatch.delenv(key)

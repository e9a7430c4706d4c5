"""Shared fixtures for core unit tests"""

from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlmodel import SQLModel

from mdsite.config import Settings
from mdsite.core.markup import MarkupConverter
from mdsite.core.template.environment import Environment
from mdsite.crud import models  # noqa: F401


@pytest.fixture(name="now")
def now_fixture():
    """Fixed build time so future-post filtering is deterministic."""
    return datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture(name="converter")
def converter_fixture():
    return MarkupConverter("gfm-like")


@pytest.fixture(name="env")
def env_fixture(tmp_path, converter):
    """Non-strict environment with includes under tmp_path/_includes."""
    return Environment(tmp_path / "_includes", strict_variables=False, converter=converter)


@pytest.fixture(name="strict_env")
def strict_env_fixture(tmp_path, converter):
    return Environment(tmp_path / "_includes", strict_variables=True, converter=converter)


@pytest.fixture(name="write")
def write_fixture(tmp_path):
    """Write files relative to tmp_path, creating parent directories."""
    def write(files: dict[str, str]) -> Path:
        for rel, text in files.items():
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        return tmp_path
    return write


@pytest.fixture(name="make_site")
def make_site_fixture(tmp_path, write):
    """Write a site source tree and return Settings pointing at it."""
    def make(files: dict[str, str], **config) -> Settings:
        write(files)
        return Settings(source=str(tmp_path), **config)
    return make


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine with all tables created."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)

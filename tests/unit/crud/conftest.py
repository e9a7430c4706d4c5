"""Shared fixtures for crud unit tests"""

import pytest
from sqlalchemy import create_engine
from sqlmodel import SQLModel, Session

from mdsite.core.utils.hashing import sha256
from mdsite.crud.models import RenderedPage


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine with all tables created."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Fresh session per test; changes are not committed."""
    with Session(engine) as s:
        yield s


@pytest.fixture(name="page")
def page_fixture(session):
    """A manifest entry persisted to the session."""
    p = RenderedPage(url="/about.html", source="about.md", output="_site/about.html", hash=sha256("<p>About</p>"))
    session.add(p)
    session.flush()
    return p

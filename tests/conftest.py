"""
tests/conftest.py

Shared fixtures: an in-memory institution repository and an SQLite-backed session.
"""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from db.base import Base
from fakes import InMemoryInstitutionRepository

import db.models  # noqa: F401 registers ORM models on Base.metadata


@pytest.fixture()
def repository() -> InMemoryInstitutionRepository:
    return InMemoryInstitutionRepository()


@pytest.fixture()
def sqlite_session() -> Session:
    """In-memory SQLite session with the full schema created."""
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    session = Session(engine, autoflush=False, expire_on_commit=False)
    try:
        yield session
    finally:
        session.close()
        engine.dispose()

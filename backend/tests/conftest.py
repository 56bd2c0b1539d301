"""Pytest configuration and fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from services.persistent_store import PersistentStore
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    clock,
    credentials,
    fake_questrade,
    queries,
    questrade_client,
    registry,
    sync_engine,
)


@pytest.fixture(name="session_factory")
def session_factory_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(name="db")
def db_fixture(session_factory):
    """A raw session for inspecting the store tables directly."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="store")
def store_fixture(session_factory) -> PersistentStore:
    """An initialized store on the in-memory database."""
    store = PersistentStore(session_factory)
    store.initialize()
    return store

"""Pytest configuration and shared fixtures."""

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import portal.db.models  # noqa: F401  (registers tables on Base.metadata)
from portal.core.visibility import VisibilityManager
from portal.db.base import Base
from portal.db.session import build_engine
from tests.factories import FIXED_NOW


@pytest.fixture(scope="session")
def engine():
    """In-memory SQLite engine shared by the whole test session."""
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Session bound to an outer transaction that is rolled back after each test."""
    connection = engine.connect()
    transaction = connection.begin()
    session = sessionmaker(bind=connection, join_transaction_mode="create_savepoint")()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def clock():
    """Fixed clock used by evaluators under test."""
    return lambda: FIXED_NOW


@pytest.fixture
def manager(db_session, clock):
    return VisibilityManager(db_session, clock=clock)

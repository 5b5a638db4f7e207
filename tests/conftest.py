"""Pytest configuration and fixtures."""

import os

# Must be set before storefront_backend.db.session builds its module-level engine.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.orm import Session

from storefront_backend.db import Base
from storefront_backend.db.commerce import Channel, User
from storefront_backend.db.session import build_engine, build_sessionmaker

# In-memory SQLite engine for tests
TEST_DATABASE_URL = "sqlite://"

test_engine = build_engine(TEST_DATABASE_URL)

TestSessionLocal = build_sessionmaker(test_engine)


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Database session fixture.
    Each test gets a freshly created schema that is dropped afterwards.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def channel(db_session: Session) -> Channel:
    return Channel.create(db_session, name="Webstore", handle="webstore", default=True)


@pytest.fixture
def user(db_session: Session) -> User:
    return User.create(db_session, name="Ada Referrer", email="ada@example.com")

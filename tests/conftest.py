"""Pytest configuration and shared fixtures."""

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import venue_search.models  # noqa: F401  (register all tables)
from venue_search.db.base import Base
from venue_search.search.es_client import reset_client
from venue_search.search.gateway import SearchIndexGateway
from tests.helpers.fake_elasticsearch import FakeElasticsearch

TEST_INDEX = "test_facilities"


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    """Database session without search sync hooks."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def fake_es() -> FakeElasticsearch:
    return FakeElasticsearch()


@pytest.fixture(scope="function")
def gateway(fake_es) -> SearchIndexGateway:
    """Gateway over the in-memory index, with the index created."""
    gateway = SearchIndexGateway(client=fake_es, index_name=TEST_INDEX)
    gateway.ensure_index()
    return gateway


@pytest.fixture(autouse=True)
def _reset_es_client():
    """Never leak the process-wide client between tests."""
    reset_client()
    yield
    reset_client()

from __future__ import annotations

import os
from collections.abc import Callable, Generator

# Must be set before sms_gateway.db builds its engine at import time.
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sms_gateway.config import get_settings
from sms_gateway.db import Base
from sms_gateway.testing import CalloutSimulator, MockConfiguration
from sms_gateway.twilio_client import ProviderClient

ACCOUNT_SID = "AC00000000000000000000000000000000"
AUTH_TOKEN = "test-auth-token"
FROM_NUMBER = "+17775553333"


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_client() -> Callable[[MockConfiguration], ProviderClient]:
    """Build a ProviderClient whose callouts are answered by a CalloutSimulator."""

    def _make(config: MockConfiguration) -> ProviderClient:
        return ProviderClient(
            ACCOUNT_SID,
            AUTH_TOKEN,
            FROM_NUMBER,
            http_client=CalloutSimulator(config),
        )

    return _make


@pytest.fixture
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    # StaticPool keeps one in-memory database across threads (TestClient runs
    # sync endpoints in a worker thread).
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()

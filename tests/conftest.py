"""
Pytest fixtures for the test suite.

Data-layer tests use a fresh in-memory SQLite engine per test. StaticPool keeps
a single connection, so sessions opened by the FastAPI TestClient (which runs
handlers on another thread) see the same database. The database disappears with
the engine at the end of each test.
"""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_authz.directory.memory import InMemoryPrincipalDirectory
from tenant_authz.directory.sql import SqlPrincipalDirectory
from tenant_authz.policy.config import PolicyConfig
from tenant_authz.trusted import TrustedChannelGate


TEST_DB_URL = "sqlite:///:memory:"
TEST_SECRET = "test-trusted-channel-secret-0123456789abcdef"


@pytest.fixture
def db_engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture
def tables(db_engine):
    """Create all ORM tables on the test engine."""
    from tenant_authz.db import filters as _filters  # noqa: F401  (register listeners)
    from tenant_authz.db.base import Base
    from tenant_authz.models import directory as _directory  # noqa: F401
    from tenant_authz.models import resources as _resources  # noqa: F401

    Base.metadata.create_all(bind=db_engine)
    return db_engine


@pytest.fixture
def session_factory(tables):
    return sessionmaker(bind=tables, autocommit=False, autoflush=False, class_=Session)


@pytest.fixture
def db_session(session_factory):
    """Provide a Session bound to the test DB."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def sql_directory(db_session):
    return SqlPrincipalDirectory(db_session)


@pytest.fixture
def memory_directory():
    return InMemoryPrincipalDirectory()


@pytest.fixture(params=["memory", "sql"])
def directory(request):
    """Run a test against both directory implementations."""
    if request.param == "memory":
        return InMemoryPrincipalDirectory()
    return request.getfixturevalue("sql_directory")


@pytest.fixture
def policy_config():
    return PolicyConfig()


@pytest.fixture
def trusted_secret():
    return TEST_SECRET


@pytest.fixture
def gate(policy_config, trusted_secret):
    return TrustedChannelGate(secret=trusted_secret, channels=policy_config.trusted_channels)


@pytest.fixture
def trusted(gate):
    """A verified TrustedContext for the provisioning channel."""
    return gate.verify(gate.issue("identity-provisioning"))

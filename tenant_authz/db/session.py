from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from tenant_authz.settings import get_settings


_settings = get_settings()

engine = create_engine(
    _settings.resolved_db_url(),
    connect_args={"check_same_thread": False} if _settings.resolved_db_url().startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def get_db() -> Generator[Session, None, None]:
    """
    Plain DB dependency.

    Used for the Principal Directory, which is never tenant-filtered. Resource
    handlers should depend on `tenant_authz.api.dependencies.get_scoped_db`
    instead, which attaches the request's context to `Session.info["authz"]`.
    """

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

from __future__ import annotations

import logging

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from tenant_authz.db.base import Base
from tenant_authz.directory.sql import SqlPrincipalDirectory
from tenant_authz.models import directory as _directory_models  # noqa: F401  (register tables)
from tenant_authz.models import resources as _resource_models  # noqa: F401  (register tables)
from tenant_authz.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def init_db(bind: Engine | None = None, settings: Settings | None = None) -> None:
    """
    Create tables and, in single-tenant deployments, the default organization.

    No principals are seeded: the first admin is always established through
    BootstrapManager.claim_admin.
    """

    if bind is None:
        from tenant_authz.db.session import engine as bind

    settings = settings or get_settings()
    Base.metadata.create_all(bind=bind)

    if settings.default_organization_id:
        with Session(bind=bind) as db:
            org = SqlPrincipalDirectory(db).ensure_organization(
                settings.default_organization_id,
                settings.default_organization_name,
            )
            logger.info("Default organization ready: %s (%s)", org.id, org.name)

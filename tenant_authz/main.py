from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tenant_authz.api import bootstrap, principals
from tenant_authz.api.errors import register_error_handlers
from tenant_authz.db import filters as _filters  # noqa: F401  (register SQLAlchemy listeners)
from tenant_authz.db.init_db import init_db
from tenant_authz.logging_config import configure_app_logging
from tenant_authz.policy.config import PolicyConfig, load_policy_config
from tenant_authz.settings import Settings, get_settings
from tenant_authz.trusted import TrustedChannelGate

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, policy_config: PolicyConfig | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_app_logging(settings.log_level)

    if policy_config is None:
        policy_config = load_policy_config(settings.resolved_policy_config_path())
        logger.info("Loaded policy config: %s", settings.resolved_policy_config_path())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("App startup beginning")
        init_db(settings=settings)
        logger.info("Database initialized (tables ensured)")
        yield

    app = FastAPI(title="tenant-authz", lifespan=lifespan)
    app.state.settings = settings
    app.state.policy_config = policy_config
    app.state.trusted_gate = TrustedChannelGate.from_settings(settings, policy_config.trusted_channels)
    if not app.state.trusted_gate.enabled:
        logger.warning("AUTHZ_TRUSTED_CHANNEL_SECRET not set; trusted-channel endpoints will reject all callers")

    register_error_handlers(app)
    app.include_router(principals.router)
    app.include_router(bootstrap.router)

    return app

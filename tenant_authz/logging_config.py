from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set the level of the `tenant_authz` logger tree.

    Handlers are left to the host process (uvicorn, a job runner, pytest).
    Use `AUTHZ_LOG_LEVEL=DEBUG` to see every allow/deny decision.
    """

    normalized = level.upper()
    logging.getLogger("tenant_authz").setLevel(normalized)
    logging.getLogger("tenant_authz").propagate = True

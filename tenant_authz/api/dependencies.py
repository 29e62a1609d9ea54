from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from tenant_authz.bootstrap import BootstrapManager
from tenant_authz.db.session import get_db
from tenant_authz.directory.sql import SqlPrincipalDirectory
from tenant_authz.engine import AuthorizationEngine
from tenant_authz.policy.config import PolicyConfig
from tenant_authz.policy.context import AuthorizationContext
from tenant_authz.policy.evaluator import PolicyEvaluator
from tenant_authz.settings import Settings
from tenant_authz.trusted import TrustedChannelGate, TrustedContext

logger = logging.getLogger(__name__)


def get_policy_config(request: Request) -> PolicyConfig:
    config = getattr(request.app.state, "policy_config", None)
    if config is None:
        raise RuntimeError("Policy config not loaded. Was the app built with create_app()?")
    return config


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_trusted_gate(request: Request) -> TrustedChannelGate:
    return request.app.state.trusted_gate


def get_authz_engine(
    db: Session = Depends(get_db),
    config: PolicyConfig = Depends(get_policy_config),
    settings: Settings = Depends(get_app_settings),
    gate: TrustedChannelGate = Depends(get_trusted_gate),
) -> AuthorizationEngine:
    directory = SqlPrincipalDirectory(db)
    return AuthorizationEngine(
        directory,
        evaluator=PolicyEvaluator(config),
        gate=gate,
        bootstrap=BootstrapManager.from_settings(directory, settings),
    )


def get_principal_id(request: Request, config: PolicyConfig = Depends(get_policy_config)) -> str:
    """
    Read the verified principal id forwarded by the identity layer.

    - Input: `Authorization: Bearer <principal id>`; token verification
      happened upstream, before this service is called.
    - A request may carry a principal identity or a system credential, never both.
    """

    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    if request.headers.get(config.auth.system_credential_header):
        logger.warning("System credential sent to a principal endpoint path=%s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="System credentials are not accepted on principal endpoints.",
        )

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing %s header path=%s method=%s", header_name, request.url.path, request.method)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid %s header format path=%s method=%s", header_name, request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.",
        )

    principal_id = raw[len(prefix) :].strip()
    if not principal_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Missing token after '{bearer_prefix}'.",
        )
    return principal_id


def get_authz_context(
    request: Request,
    principal_id: str = Depends(get_principal_id),
    engine: AuthorizationEngine = Depends(get_authz_engine),
) -> AuthorizationContext:
    """
    Resolve the context once per request and pin it on request.state.

    MissingContext propagates to the error handler (403 `missing_context`).
    """

    existing = getattr(request.state, "authz", None)
    if isinstance(existing, AuthorizationContext):
        return existing

    ctx = engine.resolve_context(principal_id)
    request.state.authz = ctx
    return ctx


def get_trusted_context(
    request: Request,
    config: PolicyConfig = Depends(get_policy_config),
    gate: TrustedChannelGate = Depends(get_trusted_gate),
) -> TrustedContext:
    """System callers only: verify the credential from its dedicated header."""

    if request.headers.get(config.auth.authorization_header):
        logger.warning("Principal identity sent to a trusted-channel endpoint path=%s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Principal identities are not accepted on trusted-channel endpoints.",
        )

    token = request.headers.get(config.auth.system_credential_header, "").strip()
    ctx = gate.verify(token)
    request.state.authz = ctx
    return ctx


def get_scoped_db(
    ctx: AuthorizationContext = Depends(get_authz_context),
    db: Session = Depends(get_db),
) -> Session:
    """Session whose resource queries and writes are scoped to the caller's organization."""
    db.info["authz"] = ctx
    return db

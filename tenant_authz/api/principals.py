from __future__ import annotations

from fastapi import APIRouter, Depends

from tenant_authz.api.dependencies import get_authz_context, get_authz_engine
from tenant_authz.directory.base import PrincipalRecord
from tenant_authz.directory.legacy import LegacyUserRow, to_legacy
from tenant_authz.engine import PRINCIPAL_KIND, AuthorizationEngine
from tenant_authz.policy.context import AuthorizationContext, Operation, Target
from tenant_authz.schemas.directory import ContextOut, PrincipalOut, PrincipalUpdate

router = APIRouter(tags=["principals"])


@router.get("/me/context", response_model=ContextOut)
def my_context(ctx: AuthorizationContext = Depends(get_authz_context)) -> AuthorizationContext:
    return ctx


def _readable_principal(principal_id: str, ctx: AuthorizationContext, engine: AuthorizationEngine) -> PrincipalRecord:
    principal = engine.directory.get(principal_id)
    engine.require(ctx, PRINCIPAL_KIND, Operation.READ, Target.of(principal))
    return principal


@router.get("/principals/{principal_id}", response_model=PrincipalOut)
def get_principal(
    principal_id: str,
    ctx: AuthorizationContext = Depends(get_authz_context),
    engine: AuthorizationEngine = Depends(get_authz_engine),
) -> PrincipalRecord:
    return _readable_principal(principal_id, ctx, engine)


@router.get("/principals/{principal_id}/legacy", response_model=LegacyUserRow)
def get_principal_legacy(
    principal_id: str,
    ctx: AuthorizationContext = Depends(get_authz_context),
    engine: AuthorizationEngine = Depends(get_authz_engine),
) -> LegacyUserRow:
    # Compatibility view for collaborators still reading the old `users` shape.
    return to_legacy(_readable_principal(principal_id, ctx, engine))


@router.patch("/principals/{principal_id}", response_model=PrincipalOut)
def update_principal(
    principal_id: str,
    body: PrincipalUpdate,
    ctx: AuthorizationContext = Depends(get_authz_context),
    engine: AuthorizationEngine = Depends(get_authz_engine),
) -> PrincipalRecord:
    return engine.update_principal(ctx, principal_id, body.model_dump(exclude_unset=True))

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from tenant_authz.api.dependencies import get_authz_engine, get_principal_id, get_trusted_context
from tenant_authz.directory.base import OrganizationRecord, PrincipalRecord
from tenant_authz.engine import AuthorizationEngine
from tenant_authz.schemas.directory import (
    BootstrapStateOut,
    ClaimAdminIn,
    ClaimAdminOut,
    OrganizationIn,
    OrganizationOut,
    PrincipalOut,
    ProvisionIn,
)
from tenant_authz.trusted import TrustedContext

router = APIRouter(prefix="/bootstrap", tags=["bootstrap"])


@router.post("/organizations", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
def create_organization(
    body: OrganizationIn,
    trusted: TrustedContext = Depends(get_trusted_context),
    engine: AuthorizationEngine = Depends(get_authz_engine),
) -> OrganizationRecord:
    return engine.bootstrap.create_organization(trusted, body.name, body.id)


@router.post("/principals", response_model=PrincipalOut)
def provision_principal(
    body: ProvisionIn,
    trusted: TrustedContext = Depends(get_trusted_context),
    engine: AuthorizationEngine = Depends(get_authz_engine),
) -> PrincipalRecord:
    # Called by the identity-provider webhook on first sign-in; repeat calls are no-ops.
    return engine.bootstrap.provision(trusted, body.id, body.email, body.display_name, body.organization_id)


@router.get("/organizations/{organization_id}/state", response_model=BootstrapStateOut)
def organization_state(
    organization_id: str,
    trusted: TrustedContext = Depends(get_trusted_context),
    engine: AuthorizationEngine = Depends(get_authz_engine),
) -> BootstrapStateOut:
    return BootstrapStateOut(organization_id=organization_id, state=engine.bootstrap.state(organization_id))


@router.post("/claim-admin", response_model=ClaimAdminOut)
def claim_admin(
    body: ClaimAdminIn,
    principal_id: str = Depends(get_principal_id),
    engine: AuthorizationEngine = Depends(get_authz_engine),
) -> ClaimAdminOut:
    """
    Self-elevate to admin of the caller's organization while it has none.

    Needs only an identity, not a context. Callers outside the organization
    get 403 cross_tenant; `already_has_admin` is a normal 200 response.
    """

    result = engine.claim_admin(principal_id, body.organization_id)
    return ClaimAdminOut(organization_id=body.organization_id, result=result)

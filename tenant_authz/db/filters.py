from __future__ import annotations

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session, with_loader_criteria

from tenant_authz.errors import CrossTenant, TenantTagImmutable
from tenant_authz.models.resources import TenantScoped
from tenant_authz.policy.context import AuthorizationContext


def _principal_context(session: Session) -> AuthorizationContext | None:
    # Trusted contexts and sessions without a context are not scoped.
    authz = session.info.get("authz")
    return authz if isinstance(authz, AuthorizationContext) else None


@event.listens_for(Session, "do_orm_execute")
def _scope_tenant_reads(execute_state) -> None:
    """
    Transparent tenant scoping.

    Existing query code stays unchanged:
        db.scalars(select(Task)).all()
    returns only the current organization's rows when the session carries a
    principal AuthorizationContext. The principals table is not a TenantScoped
    model and is never filtered here.
    """

    if not execute_state.is_select:
        return

    authz = _principal_context(execute_state.session)
    if authz is None:
        return

    org_id = authz.organization_id
    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(TenantScoped, lambda cls: cls.organization_id == org_id, include_aliases=True),
    )


@event.listens_for(Session, "before_flush")
def _guard_tenant_writes(session: Session, flush_context, instances) -> None:
    """
    New resources get the creator's organization and `created_by`; a foreign
    tenant tag is CrossTenant. Existing resources never change tenant.
    """

    authz = _principal_context(session)

    if authz is not None:
        for obj in session.new:
            if not isinstance(obj, TenantScoped):
                continue
            if obj.organization_id is None:
                obj.organization_id = authz.organization_id
            elif obj.organization_id != authz.organization_id:
                raise CrossTenant(
                    f"cannot create {obj.resource_kind} in organization {obj.organization_id!r} "
                    f"from organization {authz.organization_id!r}"
                )
            if obj.created_by is None:
                obj.created_by = authz.principal_id

    for obj in session.dirty:
        if not isinstance(obj, TenantScoped):
            continue
        history = inspect(obj).attrs.organization_id.history
        if history.added and list(history.added) != list(history.deleted):
            raise TenantTagImmutable(f"{obj.resource_kind} {obj.id!r} cannot move to another organization")

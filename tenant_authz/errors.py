"""
Error kinds raised by the authorization engine.

Permission errors (`CrossTenant`, `InsufficientRole`) are always surfaced to the
caller as-is. `AlreadyAssigned` and `AlreadyHasAdmin` are idempotency guards:
callers retrying bootstrap treat them as no-ops.
"""

from __future__ import annotations


class AuthorizationError(Exception):
    """Base class for every error raised by tenant_authz."""


# ---- Context -------------------------------------------------------------------------


class MissingContext(AuthorizationError):
    """Principal has no profile or no organization yet (pre-bootstrap)."""

    def __init__(self, principal_id: str, detail: str = "no authorization context") -> None:
        super().__init__(f"{detail}: principal={principal_id!r}")
        self.principal_id = principal_id
        self.detail = detail


class InactivePrincipal(MissingContext):
    """Principal exists but has been deactivated."""

    def __init__(self, principal_id: str) -> None:
        super().__init__(principal_id, detail="principal is deactivated")


# ---- Decisions -----------------------------------------------------------------------


class PermissionDenied(AuthorizationError):
    """A Deny decision turned into an exception (see Decision.raise_for_deny)."""

    reason: str = "denied"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.reason)


class CrossTenant(PermissionDenied):
    reason = "cross_tenant"


class NotAMember(CrossTenant):
    """Principal tried to act on an organization it does not belong to."""

    def __init__(self, principal_id: str, organization_id: str) -> None:
        super().__init__(f"principal {principal_id!r} is not a member of organization {organization_id!r}")
        self.principal_id = principal_id
        self.organization_id = organization_id


class InsufficientRole(PermissionDenied):
    reason = "insufficient_role"


class TenantTagImmutable(PermissionDenied):
    """Attempt to move an existing resource to another organization."""

    reason = "tenant_tag_immutable"


# ---- Directory -----------------------------------------------------------------------


class PrincipalNotFound(AuthorizationError, LookupError):
    def __init__(self, principal_id: str) -> None:
        super().__init__(f"principal not found: {principal_id!r}")
        self.principal_id = principal_id


class OrganizationNotFound(AuthorizationError, LookupError):
    def __init__(self, organization_id: str) -> None:
        super().__init__(f"organization not found: {organization_id!r}")
        self.organization_id = organization_id


class OrganizationExists(AuthorizationError):
    def __init__(self, organization_id: str) -> None:
        super().__init__(f"organization already exists: {organization_id!r}")
        self.organization_id = organization_id


class AlreadyAssigned(AuthorizationError):
    """organization_id is write-once."""

    def __init__(self, principal_id: str, organization_id: str) -> None:
        super().__init__(f"principal {principal_id!r} already belongs to organization {organization_id!r}")
        self.principal_id = principal_id
        self.organization_id = organization_id


class AlreadyHasAdmin(AuthorizationError):
    def __init__(self, organization_id: str) -> None:
        super().__init__(f"organization {organization_id!r} already has an admin")
        self.organization_id = organization_id


# ---- Trusted channel -----------------------------------------------------------------


class TrustedCredentialError(AuthorizationError):
    """Raised when a system credential is missing, malformed or not trusted. Never log the token."""


# ---- Configuration -------------------------------------------------------------------


class PolicyConfigError(ValueError):
    """Raised when the policy YAML configuration is invalid."""


class UnknownResourceKind(ValueError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"unknown resource kind: {kind!r}")
        self.kind = kind

"""
Bootstrap Manager: the first administrator of an organization.

An organization moves through three states:

    unprovisioned --(first profile provisioned)--> has_profile --(claim_admin)--> has_admin

`provision` runs on the trusted channel when an identity authenticates for the
first time. `claim_admin` lets one member self-elevate while the
organization has no admin; the directory decides it with a single conditional
write, so exactly one of several racing callers is admitted.
"""

from __future__ import annotations

import enum
import logging

from tenant_authz.directory.base import OrganizationRecord, PrincipalDirectory, PrincipalRecord
from tenant_authz.errors import (
    AlreadyHasAdmin,
    InactivePrincipal,
    NotAMember,
    PrincipalNotFound,
    TrustedCredentialError,
)
from tenant_authz.policy.context import Role
from tenant_authz.trusted import TrustedContext

logger = logging.getLogger(__name__)


class BootstrapState(str, enum.Enum):
    UNPROVISIONED = "unprovisioned"
    HAS_PROFILE = "has_profile"
    HAS_ADMIN = "has_admin"


class ClaimResult(str, enum.Enum):
    ADMITTED = "admitted"
    ALREADY_HAS_ADMIN = "already_has_admin"


class BootstrapManager:
    def __init__(
        self,
        directory: PrincipalDirectory,
        default_organization_id: str | None = None,
        default_organization_name: str = "Default Organization",
    ) -> None:
        self._directory = directory
        self._default_org_id = default_organization_id
        self._default_org_name = default_organization_name

    @classmethod
    def from_settings(cls, directory: PrincipalDirectory, settings) -> BootstrapManager:
        return cls(
            directory,
            default_organization_id=settings.default_organization_id,
            default_organization_name=settings.default_organization_name,
        )

    # ---- Trusted-channel operations -------------------------------------------------

    def provision(
        self,
        credential: TrustedContext,
        principal_id: str,
        email: str,
        display_name: str = "",
        organization_id: str | None = None,
    ) -> PrincipalRecord:
        """
        Create the profile of a newly authenticated identity (idempotent).

        The profile starts as `member` of `organization_id`, the organization
        the identity signed up into. Without one it lands in the default
        organization when the deployment is single-tenant, or in no
        organization at all. An existing profile is returned unchanged, except
        that a missing organization is filled in.
        """

        _require_trusted(credential)
        if organization_id is None and self._default_org_id:
            organization_id = self._directory.ensure_organization(self._default_org_id, self._default_org_name).id

        try:
            existing = self._directory.get(principal_id)
        except PrincipalNotFound:
            existing = None
        if existing is not None:
            if organization_id is None or existing.organization_id == organization_id:
                logger.debug("Provision skipped; principal=%s already has a profile", principal_id)
                return existing
            # Write-once: AlreadyAssigned when the profile belongs elsewhere.
            principal = self._directory.set_organization(principal_id, organization_id)
            logger.info(
                "Assigned principal=%s to organization=%s via channel=%s",
                principal_id,
                organization_id,
                credential.channel,
            )
            return principal

        principal = self._directory.upsert(
            PrincipalRecord(
                id=principal_id,
                email=email,
                display_name=display_name or email,
                role=Role.MEMBER,
                organization_id=organization_id,
            )
        )
        logger.info(
            "Provisioned principal=%s organization=%s via channel=%s",
            principal_id,
            organization_id,
            credential.channel,
        )
        return principal

    def create_organization(
        self,
        credential: TrustedContext,
        name: str,
        organization_id: str | None = None,
    ) -> OrganizationRecord:
        _require_trusted(credential)
        if not name or not name.strip():
            raise ValueError("organization name must not be empty")
        org = self._directory.create_organization(name.strip(), organization_id)
        logger.info("Created organization=%s via channel=%s", org.id, credential.channel)
        return org

    # ---- Principal operations -------------------------------------------------------

    def claim_admin(self, principal_id: str, organization_id: str, strict: bool = False) -> ClaimResult:
        """
        Make `principal_id` the first admin of `organization_id`.

        Returns ADMITTED for the single winner and ALREADY_HAS_ADMIN for
        everyone else (or raises AlreadyHasAdmin when `strict`). Only members
        of the organization may claim it; anyone else gets NotAMember, a
        CrossTenant.
        """

        principal = self._directory.get(principal_id)
        if not principal.is_active:
            raise InactivePrincipal(principal_id)
        if principal.organization_id != organization_id:
            logger.warning(
                "claim_admin denied: principal=%s belongs to organization=%s, not %s",
                principal_id,
                principal.organization_id,
                organization_id,
            )
            raise NotAMember(principal_id, organization_id)

        admitted = self._directory.claim_admin_slot(principal_id, organization_id)

        if admitted:
            logger.info("Bootstrap admin claimed organization=%s principal=%s", organization_id, principal_id)
            return ClaimResult.ADMITTED

        logger.info("Bootstrap admin claim refused organization=%s principal=%s", organization_id, principal_id)
        if strict:
            raise AlreadyHasAdmin(organization_id)
        return ClaimResult.ALREADY_HAS_ADMIN

    def state(self, organization_id: str) -> BootstrapState:
        org = self._directory.get_organization(organization_id)
        if org.bootstrap_admin_id is not None or self._directory.count_admins(organization_id) > 0:
            return BootstrapState.HAS_ADMIN
        if self._directory.list_principals(organization_id):
            return BootstrapState.HAS_PROFILE
        return BootstrapState.UNPROVISIONED


def _require_trusted(credential: TrustedContext) -> None:
    if not isinstance(credential, TrustedContext):
        raise TrustedCredentialError("this operation requires the trusted channel")

from __future__ import annotations

import threading
import uuid

from tenant_authz.directory.base import OrganizationRecord, PrincipalRecord, utcnow
from tenant_authz.errors import (
    AlreadyAssigned,
    NotAMember,
    OrganizationExists,
    OrganizationNotFound,
    PrincipalNotFound,
)
from tenant_authz.policy.context import Role


class InMemoryPrincipalDirectory:
    """
    Process-local directory guarded by one lock.

    Useful for single-process deployments and for tests that do not need SQL.
    Every method runs under the lock, so claim_admin_slot is a true compare-and-set.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._principals: dict[str, PrincipalRecord] = {}
        self._organizations: dict[str, OrganizationRecord] = {}

    # ---- Principals -----------------------------------------------------------------

    def get(self, principal_id: str) -> PrincipalRecord:
        with self._lock:
            try:
                return self._principals[principal_id]
            except KeyError:
                raise PrincipalNotFound(principal_id) from None

    def upsert(self, principal: PrincipalRecord) -> PrincipalRecord:
        with self._lock:
            existing = self._principals.get(principal.id)
            if principal.organization_id is not None:
                self._require_org(principal.organization_id)

            if existing is None:
                self._principals[principal.id] = principal
                return principal

            organization_id = existing.organization_id
            if principal.organization_id is not None:
                if organization_id is None:
                    organization_id = principal.organization_id
                elif organization_id != principal.organization_id:
                    raise AlreadyAssigned(principal.id, organization_id)

            updated = existing.with_changes(
                email=principal.email,
                display_name=principal.display_name,
                is_active=principal.is_active,
                organization_id=organization_id,
            )
            self._principals[principal.id] = updated
            return updated

    def set_role(self, principal_id: str, role: Role | str) -> PrincipalRecord:
        with self._lock:
            updated = self.get(principal_id).with_changes(role=Role(role))
            self._principals[principal_id] = updated
            return updated

    def set_organization(self, principal_id: str, organization_id: str) -> PrincipalRecord:
        with self._lock:
            existing = self.get(principal_id)
            if existing.organization_id is not None:
                raise AlreadyAssigned(principal_id, existing.organization_id)
            self._require_org(organization_id)
            updated = existing.with_changes(organization_id=organization_id)
            self._principals[principal_id] = updated
            return updated

    def deactivate(self, principal_id: str) -> PrincipalRecord:
        with self._lock:
            updated = self.get(principal_id).with_changes(is_active=False)
            self._principals[principal_id] = updated
            return updated

    def list_principals(self, organization_id: str) -> list[PrincipalRecord]:
        with self._lock:
            return [p for p in self._principals.values() if p.organization_id == organization_id]

    # ---- Organizations --------------------------------------------------------------

    def create_organization(self, name: str, organization_id: str | None = None) -> OrganizationRecord:
        with self._lock:
            org_id = organization_id or str(uuid.uuid4())
            if org_id in self._organizations:
                raise OrganizationExists(org_id)
            org = OrganizationRecord(id=org_id, name=name, created_at=utcnow())
            self._organizations[org_id] = org
            return org

    def ensure_organization(self, organization_id: str, name: str) -> OrganizationRecord:
        with self._lock:
            existing = self._organizations.get(organization_id)
            if existing is not None:
                return existing
            return self.create_organization(name, organization_id)

    def get_organization(self, organization_id: str) -> OrganizationRecord:
        with self._lock:
            return self._require_org(organization_id)

    def count_admins(self, organization_id: str) -> int:
        with self._lock:
            return sum(
                1
                for p in self._principals.values()
                if p.organization_id == organization_id and p.role is Role.ADMIN and p.is_active
            )

    def claim_admin_slot(self, principal_id: str, organization_id: str) -> bool:
        with self._lock:
            org = self._require_org(organization_id)
            if org.bootstrap_admin_id is not None or self.count_admins(organization_id) > 0:
                return False

            principal = self.get(principal_id)
            if principal.organization_id != organization_id:
                raise NotAMember(principal_id, organization_id)

            now = utcnow()
            self._organizations[organization_id] = OrganizationRecord(
                id=org.id,
                name=org.name,
                created_at=org.created_at,
                bootstrap_admin_id=principal_id,
                bootstrap_completed_at=now,
            )
            self._principals[principal_id] = principal.with_changes(role=Role.ADMIN)
            return True

    def _require_org(self, organization_id: str) -> OrganizationRecord:
        try:
            return self._organizations[organization_id]
        except KeyError:
            raise OrganizationNotFound(organization_id) from None

from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tenant_authz.directory.base import OrganizationRecord, PrincipalRecord, utcnow
from tenant_authz.errors import (
    AlreadyAssigned,
    NotAMember,
    OrganizationExists,
    OrganizationNotFound,
    PrincipalNotFound,
)
from tenant_authz.models.directory import Organization, Principal
from tenant_authz.policy.context import Role

logger = logging.getLogger(__name__)


class SqlPrincipalDirectory:
    """
    Durable Principal Directory on SQLAlchemy.

    Only ever touches the `principals` and `organizations` tables. Mutations
    commit their own unit of work; write-once and compare-and-set rules are
    enforced with conditional UPDATEs rather than read-then-write.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ---- Principals -----------------------------------------------------------------

    def get(self, principal_id: str) -> PrincipalRecord:
        row = self._load(principal_id)
        if row is None:
            raise PrincipalNotFound(principal_id)
        return _principal_record(row)

    def upsert(self, principal: PrincipalRecord) -> PrincipalRecord:
        if principal.organization_id is not None:
            self._require_org(principal.organization_id)

        row = self._load(principal.id)
        if row is None:
            self._session.add(
                Principal(
                    id=principal.id,
                    email=principal.email,
                    display_name=principal.display_name,
                    role=principal.role.value,
                    organization_id=principal.organization_id,
                    is_active=principal.is_active,
                )
            )
            try:
                self._session.commit()
            except IntegrityError:
                # Lost an insert race for the same id; apply as an update instead.
                self._session.rollback()
                logger.info("Principal %s inserted concurrently; retrying as update", principal.id)
                if self._load(principal.id) is None:
                    raise
                return self.upsert(principal)
            return self.get(principal.id)

        if principal.organization_id is not None:
            if row.organization_id is None:
                row.organization_id = principal.organization_id
            elif row.organization_id != principal.organization_id:
                raise AlreadyAssigned(principal.id, row.organization_id)

        row.email = principal.email
        row.display_name = principal.display_name
        row.is_active = principal.is_active
        self._session.commit()
        return self.get(principal.id)

    def set_role(self, principal_id: str, role: Role | str) -> PrincipalRecord:
        role = Role(role)
        result = self._session.execute(
            update(Principal)
            .where(Principal.id == principal_id)
            .values(role=role.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._session.rollback()
            raise PrincipalNotFound(principal_id)
        self._session.commit()
        return self.get(principal_id)

    def set_organization(self, principal_id: str, organization_id: str) -> PrincipalRecord:
        self._require_org(organization_id)
        result = self._session.execute(
            update(Principal)
            .where(Principal.id == principal_id, Principal.organization_id.is_(None))
            .values(organization_id=organization_id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._session.rollback()
            existing = self.get(principal_id)
            raise AlreadyAssigned(principal_id, existing.organization_id or "")
        self._session.commit()
        return self.get(principal_id)

    def deactivate(self, principal_id: str) -> PrincipalRecord:
        result = self._session.execute(
            update(Principal)
            .where(Principal.id == principal_id)
            .values(is_active=False, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._session.rollback()
            raise PrincipalNotFound(principal_id)
        self._session.commit()
        return self.get(principal_id)

    def list_principals(self, organization_id: str) -> list[PrincipalRecord]:
        stmt = (
            select(Principal)
            .where(Principal.organization_id == organization_id)
            .order_by(Principal.created_at, Principal.id)
            .execution_options(populate_existing=True)
        )
        return [_principal_record(row) for row in self._session.scalars(stmt).all()]

    # ---- Organizations --------------------------------------------------------------

    def create_organization(self, name: str, organization_id: str | None = None) -> OrganizationRecord:
        if organization_id is not None and self._load_org(organization_id) is not None:
            raise OrganizationExists(organization_id)

        org = Organization(name=name)
        if organization_id is not None:
            org.id = organization_id
        self._session.add(org)
        try:
            self._session.commit()
        except IntegrityError:
            # Same id inserted concurrently.
            self._session.rollback()
            raise OrganizationExists(org.id) from None
        return _organization_record(org)

    def ensure_organization(self, organization_id: str, name: str) -> OrganizationRecord:
        row = self._load_org(organization_id)
        if row is not None:
            return _organization_record(row)
        try:
            return self.create_organization(name, organization_id)
        except OrganizationExists:
            return self.get_organization(organization_id)

    def get_organization(self, organization_id: str) -> OrganizationRecord:
        return _organization_record(self._require_org(organization_id))

    def count_admins(self, organization_id: str) -> int:
        stmt = select(func.count(Principal.id)).where(
            Principal.organization_id == organization_id,
            Principal.role == Role.ADMIN.value,
            Principal.is_active.is_(True),
        )
        return int(self._session.execute(stmt).scalar_one())

    def claim_admin_slot(self, principal_id: str, organization_id: str) -> bool:
        now = utcnow()
        active_admin = (
            select(Principal.id)
            .where(
                Principal.organization_id == organization_id,
                Principal.role == Role.ADMIN.value,
                Principal.is_active.is_(True),
            )
            .exists()
        )
        # The organization row is the lock: under concurrent claims only one UPDATE matches.
        claimed = self._session.execute(
            update(Organization)
            .where(
                Organization.id == organization_id,
                Organization.bootstrap_admin_id.is_(None),
                ~active_admin,
            )
            .values(bootstrap_admin_id=principal_id, bootstrap_completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            self._session.rollback()
            self._require_org(organization_id)
            return False

        promoted = self._session.execute(
            update(Principal)
            .where(Principal.id == principal_id, Principal.organization_id == organization_id)
            .values(role=Role.ADMIN.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if promoted.rowcount != 1:
            # Not a member: undo the organization claim too.
            self._session.rollback()
            self.get(principal_id)
            raise NotAMember(principal_id, organization_id)

        self._session.commit()
        return True

    # ---- Helpers --------------------------------------------------------------------

    def _load(self, principal_id: str) -> Principal | None:
        stmt = select(Principal).where(Principal.id == principal_id).execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _load_org(self, organization_id: str) -> Organization | None:
        stmt = (
            select(Organization).where(Organization.id == organization_id).execution_options(populate_existing=True)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def _require_org(self, organization_id: str) -> Organization:
        row = self._load_org(organization_id)
        if row is None:
            raise OrganizationNotFound(organization_id)
        return row


def _principal_record(row: Principal) -> PrincipalRecord:
    return PrincipalRecord(
        id=row.id,
        email=row.email,
        display_name=row.display_name,
        role=Role(row.role),
        organization_id=row.organization_id,
        is_active=row.is_active,
    )


def _organization_record(row: Organization) -> OrganizationRecord:
    return OrganizationRecord(
        id=row.id,
        name=row.name,
        created_at=row.created_at,
        bootstrap_admin_id=row.bootstrap_admin_id,
        bootstrap_completed_at=row.bootstrap_completed_at,
    )

"""
Consolidation of the two legacy profile tables into canonical principals.

The scheduling app grew two overlapping profile tables:

* ``user_profiles`` (modern): ``organization_id``, ``name``, ``base_role``
  (admin / superintendent / engineer / foreman / worker).
* ``users`` (legacy): ``org_id``, ``name``, ``role`` (admin / foreman /
  viewer) and sometimes ``base_role``.

Authorization helpers used to consult both, so the two could disagree. Here they
are merged once into the Principal Directory:

* ``user_profiles`` wins; ``users`` only fills gaps.
* ``admin`` in any role column maps to ``admin``; everything else is ``member``.
* Rows whose two tables name different organizations are reported as conflicts
  and left alone. Nobody guesses which tenant a person belongs to.

``to_legacy`` renders a canonical principal in the old ``users`` shape for
collaborators that still read it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from pydantic import BaseModel, ConfigDict

from tenant_authz.directory.base import PrincipalDirectory, PrincipalRecord
from tenant_authz.errors import AlreadyAssigned, OrganizationNotFound, PrincipalNotFound
from tenant_authz.policy.context import Role

logger = logging.getLogger(__name__)

_LEGACY_MEMBER_ROLE = "foreman"


class LegacyProfileRow(BaseModel):
    """A row of the modern ``user_profiles`` table."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    email: str
    name: str | None = None
    organization_id: str | None = None
    base_role: str | None = None


class LegacyUserRow(BaseModel):
    """A row of the legacy ``users`` table (also the compatibility output shape)."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    email: str
    name: str | None = None
    org_id: str | None = None
    role: str | None = None
    base_role: str | None = None


@dataclass(frozen=True)
class LegacyConflict:
    principal_id: str
    reason: str


@dataclass
class ConsolidationReport:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    conflicts: list[LegacyConflict] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.conflicts


def merge_legacy_rows(profile: LegacyProfileRow | None, user: LegacyUserRow | None) -> PrincipalRecord:
    """
    Merge the two rows of one identity into a canonical PrincipalRecord.

    Raises ValueError on organization conflicts or when both rows are missing.
    """

    if profile is None and user is None:
        raise ValueError("at least one legacy row is required")
    if profile is not None and user is not None and profile.id != user.id:
        raise ValueError(f"rows belong to different identities: {profile.id!r} != {user.id!r}")

    principal_id = profile.id if profile is not None else user.id  # type: ignore[union-attr]

    profile_org = profile.organization_id if profile is not None else None
    user_org = user.org_id if user is not None else None
    if profile_org and user_org and profile_org != user_org:
        raise ValueError(f"organization mismatch: user_profiles={profile_org!r} users={user_org!r}")

    roles = set()
    if profile is not None and profile.base_role:
        roles.add(profile.base_role.strip().lower())
    if user is not None:
        roles.update(r.strip().lower() for r in (user.role, user.base_role) if r)

    email = (profile.email if profile is not None else None) or (user.email if user is not None else "")
    name = (profile.name if profile is not None else None) or (user.name if user is not None else None)

    return PrincipalRecord(
        id=principal_id,
        email=email,
        display_name=name or email,
        role=Role.ADMIN if "admin" in roles else Role.MEMBER,
        organization_id=profile_org or user_org,
    )


def consolidate(
    directory: PrincipalDirectory,
    profiles: Iterable[LegacyProfileRow],
    users: Iterable[LegacyUserRow],
) -> ConsolidationReport:
    """
    Load legacy rows into the directory. Safe to re-run.

    New identities are inserted with their merged role. Identities already in
    the directory only get display fields refreshed and a missing organization
    filled; their role is never changed by a migration.
    """

    by_id_profiles = {p.id: p for p in profiles}
    by_id_users = {u.id: u for u in users}
    report = ConsolidationReport()

    for principal_id in sorted(by_id_profiles.keys() | by_id_users.keys()):
        try:
            merged = merge_legacy_rows(by_id_profiles.get(principal_id), by_id_users.get(principal_id))
        except ValueError as exc:
            logger.warning("Legacy consolidation conflict principal=%s: %s", principal_id, exc)
            report.conflicts.append(LegacyConflict(principal_id, str(exc)))
            continue

        try:
            directory.get(principal_id)
            existed = True
        except PrincipalNotFound:
            existed = False

        try:
            directory.upsert(merged)
        except (AlreadyAssigned, OrganizationNotFound) as exc:
            logger.warning("Legacy consolidation conflict principal=%s: %s", principal_id, exc)
            report.conflicts.append(LegacyConflict(principal_id, str(exc)))
            continue

        (report.updated if existed else report.created).append(principal_id)

    logger.info(
        "Legacy consolidation finished created=%d updated=%d conflicts=%d",
        len(report.created),
        len(report.updated),
        len(report.conflicts),
    )
    return report


def to_legacy(principal: PrincipalRecord) -> LegacyUserRow:
    """Render a canonical principal in the legacy ``users`` shape."""
    role = "admin" if principal.role is Role.ADMIN else _LEGACY_MEMBER_ROLE
    return LegacyUserRow(
        id=principal.id,
        email=principal.email,
        name=principal.display_name,
        org_id=principal.organization_id,
        role=role,
        base_role=role,
    )

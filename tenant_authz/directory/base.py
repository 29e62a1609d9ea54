"""
Principal Directory contract.

The directory is the only store the Context Resolver may read. It is keyed by
the immutable principal id, never by email or display name. Records handed to
callers are frozen snapshots, so a context derived from one cannot drift while
a request is in flight.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Protocol

from tenant_authz.policy.context import Role


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PrincipalRecord:
    id: str
    email: str
    display_name: str = ""
    role: Role = Role.MEMBER
    organization_id: str | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", Role(self.role))

    def with_changes(self, **changes) -> PrincipalRecord:
        return replace(self, **changes)


@dataclass(frozen=True)
class OrganizationRecord:
    id: str
    name: str
    created_at: datetime
    bootstrap_admin_id: str | None = None
    bootstrap_completed_at: datetime | None = None


class PrincipalReader(Protocol):
    """The narrow read handle given to the Context Resolver."""

    def get(self, principal_id: str) -> PrincipalRecord: ...


class ReadOnlyPrincipals:
    """
    Wraps a directory so that only `get` is reachable.

    The wrapped directory (and its session) is not kept as an attribute.
    """

    __slots__ = ("get",)

    def __init__(self, directory: PrincipalReader) -> None:
        lookup = directory.get

        def get(principal_id: str) -> PrincipalRecord:
            return lookup(principal_id)

        self.get = get


class PrincipalDirectory(PrincipalReader, Protocol):
    def upsert(self, principal: PrincipalRecord) -> PrincipalRecord: ...

    def set_role(self, principal_id: str, role: Role | str) -> PrincipalRecord: ...

    def set_organization(self, principal_id: str, organization_id: str) -> PrincipalRecord: ...

    def deactivate(self, principal_id: str) -> PrincipalRecord: ...

    def list_principals(self, organization_id: str) -> list[PrincipalRecord]: ...

    def create_organization(self, name: str, organization_id: str | None = None) -> OrganizationRecord:
        """Raises OrganizationExists when `organization_id` is taken."""
        ...

    def ensure_organization(self, organization_id: str, name: str) -> OrganizationRecord: ...

    def get_organization(self, organization_id: str) -> OrganizationRecord: ...

    def count_admins(self, organization_id: str) -> int: ...

    def claim_admin_slot(self, principal_id: str, organization_id: str) -> bool:
        """
        Atomically make `principal_id` the admin of `organization_id`.

        Returns False, without changing anything, when the organization already
        has an admin. Raises NotAMember when the principal does not belong to
        the organization. Implementations must decide with a single conditional
        write, never a read followed by a write.
        """
        ...

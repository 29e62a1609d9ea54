"""Tests for first-admin bootstrap."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from tenant_authz.bootstrap import BootstrapManager, BootstrapState, ClaimResult
from tenant_authz.directory.base import PrincipalRecord
from tenant_authz.directory.memory import InMemoryPrincipalDirectory
from tenant_authz.errors import (
    AlreadyAssigned,
    AlreadyHasAdmin,
    CrossTenant,
    InactivePrincipal,
    NotAMember,
    OrganizationExists,
    PrincipalNotFound,
    TrustedCredentialError,
)
from tenant_authz.policy.context import Role
from tenant_authz.resolver import ContextResolver


@pytest.fixture
def manager(directory):
    return BootstrapManager(directory)


def test_provision_creates_member_without_organization(manager, directory, trusted):
    principal = manager.provision(trusted, "d", "d@example.com", "Dee")
    assert principal.role is Role.MEMBER
    assert principal.organization_id is None
    assert principal.display_name == "Dee"
    assert directory.get("d") == principal


def test_provision_into_organization(manager, directory, trusted):
    org = manager.create_organization(trusted, "Acme")
    principal = manager.provision(trusted, "d", "d@example.com", organization_id=org.id)
    assert principal.organization_id == org.id
    assert principal.role is Role.MEMBER


def test_provision_is_idempotent(manager, directory, trusted):
    first = manager.provision(trusted, "d", "d@example.com", "Dee")
    again = manager.provision(trusted, "d", "other@example.com", "Other")
    assert again == first


def test_provision_fills_missing_organization_once(manager, directory, trusted):
    x = manager.create_organization(trusted, "X")
    y = manager.create_organization(trusted, "Y")
    manager.provision(trusted, "d", "d@example.com")

    assert manager.provision(trusted, "d", "d@example.com", organization_id=x.id).organization_id == x.id
    assert manager.provision(trusted, "d", "d@example.com", organization_id=x.id).organization_id == x.id
    with pytest.raises(AlreadyAssigned):
        manager.provision(trusted, "d", "d@example.com", organization_id=y.id)
    assert directory.get("d").organization_id == x.id


def test_provision_requires_trusted_channel(manager):
    with pytest.raises(TrustedCredentialError):
        manager.provision("not-a-credential", "d", "d@example.com")  # type: ignore[arg-type]


def test_single_tenant_provisioning_uses_default_organization(directory, trusted):
    manager = BootstrapManager(directory, default_organization_id="main", default_organization_name="Main")
    principal = manager.provision(trusted, "d", "d@example.com")
    assert principal.organization_id == "main"
    assert principal.display_name == "d@example.com"
    assert directory.get_organization("main").name == "Main"
    # A second principal joins the same organization.
    assert manager.provision(trusted, "e", "e@example.com").organization_id == "main"


def test_create_organization_requires_trusted_channel_and_name(manager, trusted):
    with pytest.raises(TrustedCredentialError):
        manager.create_organization(None, "Acme")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        manager.create_organization(trusted, "   ")
    org = manager.create_organization(trusted, " Acme ")
    assert org.name == "Acme"


def test_create_organization_with_taken_id(manager, trusted):
    manager.create_organization(trusted, "Acme", "org-x")
    with pytest.raises(OrganizationExists):
        manager.create_organization(trusted, "Acme again", "org-x")


def test_state_machine(manager, directory, trusted):
    org = manager.create_organization(trusted, "Acme")
    assert manager.state(org.id) is BootstrapState.UNPROVISIONED

    manager.provision(trusted, "d", "d@example.com", organization_id=org.id)
    assert manager.state(org.id) is BootstrapState.HAS_PROFILE

    assert manager.claim_admin("d", org.id) is ClaimResult.ADMITTED
    assert manager.state(org.id) is BootstrapState.HAS_ADMIN


def test_claim_admin_scenario(manager, directory, trusted):
    org = manager.create_organization(trusted, "Acme")
    manager.provision(trusted, "d", "d@example.com", organization_id=org.id)
    manager.provision(trusted, "e", "e@example.com", organization_id=org.id)

    assert manager.claim_admin("d", org.id) is ClaimResult.ADMITTED
    assert manager.claim_admin("e", org.id) is ClaimResult.ALREADY_HAS_ADMIN
    # Repeating the winning call is a no-op too.
    assert manager.claim_admin("d", org.id) is ClaimResult.ALREADY_HAS_ADMIN

    ctx = ContextResolver(directory).resolve("d")
    assert ctx.role is Role.ADMIN
    assert ctx.organization_id == org.id
    assert directory.get("e").role is Role.MEMBER


def test_claim_admin_strict_raises(manager, directory, trusted):
    org = manager.create_organization(trusted, "Acme")
    manager.provision(trusted, "d", "d@example.com", organization_id=org.id)
    manager.provision(trusted, "e", "e@example.com", organization_id=org.id)
    manager.claim_admin("d", org.id, strict=True)
    with pytest.raises(AlreadyHasAdmin):
        manager.claim_admin("e", org.id, strict=True)


def test_outsiders_cannot_claim_an_empty_organization(manager, directory, trusted):
    x = manager.create_organization(trusted, "X")
    y = manager.create_organization(trusted, "Y")
    manager.provision(trusted, "unassigned", "u@example.com")
    manager.provision(trusted, "other", "o@example.com", organization_id=y.id)

    for principal_id in ("unassigned", "other"):
        with pytest.raises(NotAMember):
            manager.claim_admin(principal_id, x.id)
    assert issubclass(NotAMember, CrossTenant)

    assert manager.state(x.id) is BootstrapState.UNPROVISIONED
    assert directory.get("unassigned").organization_id is None
    assert directory.get("unassigned").role is Role.MEMBER


def test_claim_admin_unknown_or_inactive_principal(manager, directory, trusted):
    org = manager.create_organization(trusted, "Acme")
    with pytest.raises(PrincipalNotFound):
        manager.claim_admin("ghost", org.id)

    manager.provision(trusted, "d", "d@example.com", organization_id=org.id)
    directory.deactivate("d")
    with pytest.raises(InactivePrincipal):
        manager.claim_admin("d", org.id)


def test_concurrent_claims_admit_exactly_one(trusted):
    directory = InMemoryPrincipalDirectory()
    manager = BootstrapManager(directory)
    org = manager.create_organization(trusted, "Acme")
    contenders = [f"p-{i}" for i in range(16)]
    for pid in contenders:
        manager.provision(trusted, pid, f"{pid}@example.com", organization_id=org.id)

    barrier = threading.Barrier(len(contenders))

    def claim(pid: str) -> ClaimResult:
        barrier.wait()
        return manager.claim_admin(pid, org.id)

    with ThreadPoolExecutor(max_workers=len(contenders)) as pool:
        results = list(pool.map(claim, contenders))

    assert results.count(ClaimResult.ADMITTED) == 1
    assert results.count(ClaimResult.ALREADY_HAS_ADMIN) == len(contenders) - 1
    assert directory.count_admins(org.id) == 1

    winner = contenders[results.index(ClaimResult.ADMITTED)]
    assert directory.get_organization(org.id).bootstrap_admin_id == winner

"""
Directory contract tests, run against the SQL and in-memory implementations.
"""

from __future__ import annotations

from datetime import timezone

import pytest

from tenant_authz.directory.base import PrincipalRecord, utcnow
from tenant_authz.errors import (
    AlreadyAssigned,
    NotAMember,
    OrganizationExists,
    OrganizationNotFound,
    PrincipalNotFound,
)
from tenant_authz.policy.context import Role


def test_get_unknown_principal_raises(directory):
    with pytest.raises(PrincipalNotFound):
        directory.get("nobody")


def test_upsert_inserts_and_get_returns_snapshot(directory):
    org = directory.create_organization("Acme Builders")
    created = directory.upsert(
        PrincipalRecord(id="p-1", email="p1@example.com", display_name="P One", organization_id=org.id)
    )
    assert created.role is Role.MEMBER
    loaded = directory.get("p-1")
    assert loaded == created
    assert loaded.organization_id == org.id
    assert loaded.is_active


def test_upsert_updates_display_fields_but_not_role(directory):
    directory.upsert(PrincipalRecord(id="p-1", email="old@example.com", display_name="Old"))
    updated = directory.upsert(
        PrincipalRecord(id="p-1", email="new@example.com", display_name="New", role=Role.ADMIN)
    )
    assert updated.email == "new@example.com"
    assert updated.display_name == "New"
    assert updated.role is Role.MEMBER


def test_upsert_fills_missing_organization_once(directory):
    org_x = directory.create_organization("X")
    org_y = directory.create_organization("Y")
    directory.upsert(PrincipalRecord(id="p-1", email="p1@example.com"))

    filled = directory.upsert(PrincipalRecord(id="p-1", email="p1@example.com", organization_id=org_x.id))
    assert filled.organization_id == org_x.id

    with pytest.raises(AlreadyAssigned):
        directory.upsert(PrincipalRecord(id="p-1", email="p1@example.com", organization_id=org_y.id))
    assert directory.get("p-1").organization_id == org_x.id


def test_upsert_with_unknown_organization_raises(directory):
    with pytest.raises(OrganizationNotFound):
        directory.upsert(PrincipalRecord(id="p-1", email="p1@example.com", organization_id="missing"))


def test_set_organization_is_write_once(directory):
    org_x = directory.create_organization("X")
    org_y = directory.create_organization("Y")
    directory.upsert(PrincipalRecord(id="p-1", email="p1@example.com"))

    assert directory.set_organization("p-1", org_x.id).organization_id == org_x.id

    # Always AlreadyAssigned, whatever the value or the caller.
    with pytest.raises(AlreadyAssigned):
        directory.set_organization("p-1", org_y.id)
    with pytest.raises(AlreadyAssigned):
        directory.set_organization("p-1", org_x.id)
    assert directory.get("p-1").organization_id == org_x.id


def test_set_organization_unknown_targets(directory):
    org = directory.create_organization("X")
    with pytest.raises(PrincipalNotFound):
        directory.set_organization("nobody", org.id)

    directory.upsert(PrincipalRecord(id="p-1", email="p1@example.com"))
    with pytest.raises(OrganizationNotFound):
        directory.set_organization("p-1", "missing")


def test_set_role_and_deactivate(directory):
    directory.upsert(PrincipalRecord(id="p-1", email="p1@example.com"))
    assert directory.set_role("p-1", "admin").role is Role.ADMIN
    deactivated = directory.deactivate("p-1")
    assert deactivated.is_active is False
    # Never hard-deleted.
    assert directory.get("p-1").is_active is False

    with pytest.raises(PrincipalNotFound):
        directory.set_role("nobody", Role.ADMIN)
    with pytest.raises(PrincipalNotFound):
        directory.deactivate("nobody")


def test_count_admins_ignores_inactive(directory):
    org = directory.create_organization("X")
    directory.upsert(PrincipalRecord(id="a-1", email="a1@example.com", organization_id=org.id))
    directory.set_role("a-1", Role.ADMIN)
    assert directory.count_admins(org.id) == 1
    directory.deactivate("a-1")
    assert directory.count_admins(org.id) == 0


def test_list_principals_by_organization(directory):
    org_x = directory.create_organization("X")
    org_y = directory.create_organization("Y")
    directory.upsert(PrincipalRecord(id="p-1", email="p1@example.com", organization_id=org_x.id))
    directory.upsert(PrincipalRecord(id="p-2", email="p2@example.com", organization_id=org_y.id))
    directory.upsert(PrincipalRecord(id="p-3", email="p3@example.com"))

    assert [p.id for p in directory.list_principals(org_x.id)] == ["p-1"]


def test_ensure_organization_is_idempotent(directory):
    first = directory.ensure_organization("default", "Default Organization")
    second = directory.ensure_organization("default", "Renamed")
    assert first.id == second.id == "default"
    assert second.name == "Default Organization"


def test_get_unknown_organization_raises(directory):
    with pytest.raises(OrganizationNotFound):
        directory.get_organization("missing")


def test_create_organization_with_taken_id_raises(directory):
    directory.create_organization("X", "org-x")
    with pytest.raises(OrganizationExists):
        directory.create_organization("Again", "org-x")
    # The directory is still usable afterwards.
    assert directory.get_organization("org-x").name == "X"
    assert directory.ensure_organization("org-x", "Other").name == "X"


def test_claim_admin_slot_compare_and_set(directory):
    org = directory.create_organization("X")
    directory.upsert(PrincipalRecord(id="d", email="d@example.com", organization_id=org.id))
    directory.upsert(PrincipalRecord(id="e", email="e@example.com", organization_id=org.id))

    assert directory.claim_admin_slot("d", org.id) is True
    assert directory.claim_admin_slot("e", org.id) is False

    assert directory.get("d").role is Role.ADMIN
    assert directory.get("e").role is Role.MEMBER
    assert directory.get_organization(org.id).bootstrap_admin_id == "d"
    assert directory.get_organization(org.id).bootstrap_completed_at is not None


def test_claim_admin_slot_refused_when_admin_already_exists(directory):
    org = directory.create_organization("X")
    directory.upsert(PrincipalRecord(id="a", email="a@example.com", organization_id=org.id))
    directory.set_role("a", Role.ADMIN)
    directory.upsert(PrincipalRecord(id="d", email="d@example.com", organization_id=org.id))

    assert directory.claim_admin_slot("d", org.id) is False
    assert directory.get_organization(org.id).bootstrap_admin_id is None


@pytest.mark.parametrize("own_org", [None, "org-y"])
def test_claim_admin_slot_rolls_back_for_non_member(directory, own_org):
    org_x = directory.create_organization("X", "org-x")
    directory.create_organization("Y", "org-y")
    directory.upsert(PrincipalRecord(id="outsider", email="o@example.com", organization_id=own_org))

    with pytest.raises(NotAMember):
        directory.claim_admin_slot("outsider", org_x.id)
    assert directory.get_organization(org_x.id).bootstrap_admin_id is None
    outsider = directory.get("outsider")
    assert outsider.role is Role.MEMBER
    assert outsider.organization_id == own_org


def test_claim_admin_slot_unknown_organization(directory):
    directory.upsert(PrincipalRecord(id="d", email="d@example.com"))
    with pytest.raises(OrganizationNotFound):
        directory.claim_admin_slot("d", "missing")


def test_in_memory_timestamps_are_timezone_aware(memory_directory):
    org = memory_directory.create_organization("X")
    memory_directory.upsert(PrincipalRecord(id="d", email="d@example.com", organization_id=org.id))
    memory_directory.claim_admin_slot("d", org.id)

    org = memory_directory.get_organization(org.id)
    assert org.created_at.tzinfo is timezone.utc
    assert org.bootstrap_completed_at.tzinfo is timezone.utc
    assert utcnow().tzinfo is timezone.utc

"""
Tests for tenant scoping of resource queries and writes (SQLAlchemy listeners).
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select

from tenant_authz.directory.base import PrincipalRecord
from tenant_authz.errors import CrossTenant, TenantTagImmutable
from tenant_authz.models.directory import Principal
from tenant_authz.models.resources import Task, TimeLog, Worker
from tenant_authz.policy.context import AuthorizationContext, Role


@pytest.fixture
def orgs(sql_directory):
    x = sql_directory.create_organization("X", "org-x")
    y = sql_directory.create_organization("Y", "org-y")
    sql_directory.upsert(PrincipalRecord(id="a", email="a@x.com", organization_id=x.id))
    sql_directory.upsert(PrincipalRecord(id="b", email="b@y.com", organization_id=y.id))
    return x, y


def _scoped(session_factory, principal_id: str, org_id: str, role: Role = Role.MEMBER):
    session = session_factory()
    session.info["authz"] = AuthorizationContext(principal_id=principal_id, organization_id=org_id, role=role)
    return session


def test_new_resources_are_stamped_with_creator_tenant(session_factory, orgs):
    with _scoped(session_factory, "a", "org-x") as db:
        task = Task(title="Pour slab")
        db.add(task)
        db.commit()
        assert task.organization_id == "org-x"
        assert task.created_by == "a"


def test_creating_in_foreign_tenant_is_rejected(session_factory, orgs):
    with _scoped(session_factory, "a", "org-x") as db:
        db.add(Task(title="Sneaky", organization_id="org-y"))
        with pytest.raises(CrossTenant):
            db.flush()
        db.rollback()


def test_reads_are_scoped_to_context_tenant(session_factory, orgs):
    with _scoped(session_factory, "a", "org-x") as db:
        db.add(Worker(name="Ann"))
        db.commit()
    with _scoped(session_factory, "b", "org-y", Role.ADMIN) as db:
        db.add(Worker(name="Bob"))
        db.commit()

    with _scoped(session_factory, "a", "org-x") as db:
        assert [w.name for w in db.scalars(select(Worker)).all()] == ["Ann"]

    # Admins are scoped too: administration stops at the tenant boundary.
    with _scoped(session_factory, "b", "org-y", Role.ADMIN) as db:
        assert [w.name for w in db.scalars(select(Worker)).all()] == ["Bob"]

    # System code without a context sees everything.
    with session_factory() as db:
        assert sorted(w.name for w in db.scalars(select(Worker)).all()) == ["Ann", "Bob"]


def test_trusted_context_is_not_scoped(session_factory, orgs, trusted):
    with session_factory() as db:
        db.add_all([Worker(name="Ann", organization_id="org-x"), Worker(name="Bob", organization_id="org-y")])
        db.commit()

    with session_factory() as db:
        db.info["authz"] = trusted
        assert len(db.scalars(select(Worker)).all()) == 2


def test_principals_are_never_tenant_filtered(session_factory, orgs):
    with _scoped(session_factory, "a", "org-x") as db:
        ids = sorted(p.id for p in db.scalars(select(Principal)).all())
    assert ids == ["a", "b"]


def test_tenant_tag_is_immutable(session_factory, orgs):
    with session_factory() as db:
        worker = Worker(name="Ann", organization_id="org-x")
        db.add(worker)
        db.flush()
        log = TimeLog(worker_id=worker.id, work_date=date(2026, 10, 1), hours=8, organization_id="org-x")
        db.add(log)
        db.commit()
        log_id = log.id

    with session_factory() as db:
        log = db.get(TimeLog, log_id)
        log.organization_id = "org-y"
        with pytest.raises(TenantTagImmutable):
            db.flush()
        db.rollback()

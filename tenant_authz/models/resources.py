from __future__ import annotations

from datetime import date, datetime
from typing import ClassVar

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from tenant_authz.db.base import Base
from tenant_authz.directory.base import utcnow
from tenant_authz.models.directory import new_id


class TenantScoped:
    """
    Mixin for every tenant-scoped resource table.

    `organization_id` is required and immutable after creation; the session
    listeners in tenant_authz.db.filters stamp and guard it.
    """

    resource_kind: ClassVar[str] = ""

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)

    @declared_attr
    def organization_id(cls) -> Mapped[str]:
        return mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)

    # Informational audit field, not used for authorization.
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Worker(TenantScoped, Base):
    __tablename__ = "workers"
    resource_kind = "worker"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    trade: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Task(TenantScoped, Base):
    __tablename__ = "tasks"
    resource_kind = "task"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="planned", nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class Assignment(TenantScoped, Base):
    __tablename__ = "assignments"
    resource_kind = "assignment"

    worker_id: Mapped[str] = mapped_column(ForeignKey("workers.id"), nullable=False, index=True)
    task_id: Mapped[str] = mapped_column(ForeignKey("tasks.id"), nullable=False, index=True)
    assigned_date: Mapped[date] = mapped_column(Date, nullable=False)
    acknowledged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class TimeLog(TenantScoped, Base):
    __tablename__ = "time_logs"
    resource_kind = "time_log"

    worker_id: Mapped[str] = mapped_column(ForeignKey("workers.id"), nullable=False, index=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    hours: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


RESOURCE_MODELS: tuple[type[TenantScoped], ...] = (Worker, Task, Assignment, TimeLog)
RESOURCE_TABLES: frozenset[str] = frozenset(m.__tablename__ for m in RESOURCE_MODELS)

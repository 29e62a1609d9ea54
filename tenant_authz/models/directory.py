from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenant_authz.db.base import Base
from tenant_authz.directory.base import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Bootstrap audit: set exactly once, by the winning claim_admin call.
    bootstrap_admin_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bootstrap_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    principals: Mapped[list["Principal"]] = relationship(back_populates="organization")


class Principal(Base):
    """
    Canonical profile row, one per identity.

    Replaces the overlapping `users` / `user_profiles` tables; see
    tenant_authz.directory.legacy for the compatibility view.
    """

    __tablename__ = "principals"
    __table_args__ = (CheckConstraint("role IN ('admin', 'member')", name="ck_principals_role"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")

    # Nullable only until bootstrap assigns it; write-once afterwards.
    organization_id: Mapped[str | None] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    organization: Mapped[Organization | None] = relationship(back_populates="principals")

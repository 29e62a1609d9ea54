from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tenant_authz.bootstrap import BootstrapState, ClaimResult
from tenant_authz.policy.context import Role


class OrganizationIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    id: str | None = Field(default=None, max_length=64)


class OrganizationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    created_at: datetime
    bootstrap_admin_id: str | None
    bootstrap_completed_at: datetime | None


class ProvisionIn(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    email: str = Field(min_length=3, max_length=255)
    display_name: str = ""
    organization_id: str | None = Field(default=None, max_length=64)


class PrincipalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    display_name: str
    role: Role
    organization_id: str | None
    is_active: bool


class PrincipalUpdate(BaseModel):
    """Partial update: omitted fields are left alone, explicit nulls are rejected."""

    model_config = ConfigDict(extra="forbid")

    email: str | None = Field(default=None, min_length=3, max_length=255)
    display_name: str | None = Field(default=None, max_length=200)
    role: Role | None = None
    organization_id: str | None = Field(default=None, min_length=1, max_length=64)
    is_active: bool | None = None

    @field_validator("*")
    @classmethod
    def _not_null(cls, value):
        # Defaults are not validated, so this only sees values the client sent.
        if value is None:
            raise ValueError("field cannot be null")
        return value


class ContextOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    principal_id: str
    organization_id: str
    role: Role


class ClaimAdminIn(BaseModel):
    organization_id: str = Field(min_length=1, max_length=64)


class ClaimAdminOut(BaseModel):
    organization_id: str
    result: ClaimResult


class BootstrapStateOut(BaseModel):
    organization_id: str
    state: BootstrapState

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from tenant_authz.errors import PolicyConfigError, UnknownResourceKind


class AuthHeaders(BaseModel):
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"
    system_credential_header: str = "X-System-Credential"


class ResourceKindConfig(BaseModel):
    # Self-service kinds let a principal read, and partially update, the row whose id is its own.
    self_service: bool = False
    self_update_fields: list[str] = Field(default_factory=list)


def _default_resources() -> dict[str, ResourceKindConfig]:
    return {
        "worker": ResourceKindConfig(),
        "task": ResourceKindConfig(),
        "assignment": ResourceKindConfig(),
        "time_log": ResourceKindConfig(),
        "principal": ResourceKindConfig(self_service=True, self_update_fields=["display_name", "email"]),
    }


class PolicyConfigModel(BaseModel):
    auth: AuthHeaders = Field(default_factory=AuthHeaders)
    resources: dict[str, ResourceKindConfig] = Field(default_factory=_default_resources)
    trusted_channels: list[str] = Field(default_factory=lambda: ["identity-provisioning", "maintenance"])

    @field_validator("resources")
    @classmethod
    def _resources_not_empty(cls, value: dict[str, ResourceKindConfig]) -> dict[str, ResourceKindConfig]:
        if not value:
            raise ValueError("at least one resource kind must be configured")
        for name, kind in value.items():
            if kind.self_update_fields and not kind.self_service:
                raise ValueError(f"resource {name!r} lists self_update_fields but is not self_service")
            if "role" in kind.self_update_fields or "organization_id" in kind.self_update_fields:
                raise ValueError(f"resource {name!r}: role and organization_id can never be self-updated")
        return value


class PolicyConfig:
    """
    Runtime helper around the validated policy model.
    """

    def __init__(self, model: PolicyConfigModel | None = None):
        self.model = model or PolicyConfigModel()
        self._self_update_fields = {
            name: frozenset(kind.self_update_fields) for name, kind in self.model.resources.items()
        }

    @property
    def auth(self) -> AuthHeaders:
        return self.model.auth

    @property
    def resource_kinds(self) -> frozenset[str]:
        return frozenset(self.model.resources)

    @property
    def trusted_channels(self) -> frozenset[str]:
        return frozenset(self.model.trusted_channels)

    def resource(self, kind: str) -> ResourceKindConfig:
        try:
            return self.model.resources[kind]
        except KeyError:
            raise UnknownResourceKind(kind) from None

    def self_update_fields(self, kind: str) -> frozenset[str]:
        self.resource(kind)
        return self._self_update_fields[kind]


def load_policy_config(path: Path) -> PolicyConfig:
    """
    Load and validate the policy YAML from disk.

    Expected shape:

        authz:
          auth:
            authorization_header: Authorization
            system_credential_header: X-System-Credential
          resources:
            task: {}
            principal:
              self_service: true
              self_update_fields: [display_name, email]
          trusted_channels: [identity-provisioning, maintenance]
    """

    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "authz" not in raw:
        raise PolicyConfigError(f"Missing top-level 'authz' key in config: {path}")

    try:
        model = PolicyConfigModel.model_validate(raw["authz"] or {})
    except ValidationError as exc:
        raise PolicyConfigError(f"Invalid policy config {path}: {exc}") from exc
    return PolicyConfig(model)

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the repo).
    - `trusted_channel_secret` has no default: without it the trusted channel is closed.
    - `default_organization_id` switches provisioning to single-tenant mode.
    """

    model_config = SettingsConfigDict(env_prefix="AUTHZ_", extra="ignore")

    db_url: str | None = None
    policy_config_path: str | None = None
    log_level: str = "INFO"

    default_organization_id: str | None = None
    default_organization_name: str = "Default Organization"

    trusted_channel_secret: str | None = None
    trusted_channel_issuer: str = "tenant-authz-system"
    trusted_token_ttl_seconds: int = 300

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "authz.db"
        return f"sqlite:///{db_path}"

    def resolved_policy_config_path(self) -> Path:
        if self.policy_config_path:
            return Path(self.policy_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "authz.yaml"

    @property
    def single_tenant(self) -> bool:
        return bool(self.default_organization_id)


@lru_cache
def get_settings() -> Settings:
    return Settings()

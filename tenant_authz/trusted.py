"""
Trusted-Channel Gate.

System callers (identity-provider webhooks that provision new profiles,
scheduled maintenance jobs) sometimes have to act before any principal context
exists. They do not get a role: they present a separate system credential, an
HS256 JWT signed with `AUTHZ_TRUSTED_CHANNEL_SECRET`, which no principal token
can be turned into.

A valid credential must:

    1. Verify against the trusted-channel secret (HS256 only).
    2. Carry our issuer (`iss`), `iat` and a not-yet-passed `exp`.
    3. Say `token_use: system`.
    4. Name a configured channel in `sub`.

Only `TrustedChannelGate.verify` can build a `TrustedContext`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable

import jwt

from tenant_authz.errors import TrustedCredentialError
from tenant_authz.policy.context import Operation
from tenant_authz.policy.decisions import Decision

logger = logging.getLogger(__name__)

_SEAL = object()
_ALGORITHM = "HS256"
_TOKEN_USE = "system"
_MIN_SECRET_BYTES = 32


@dataclass(frozen=True)
class TrustedContext:
    """Context of a verified system caller. Not a principal and not a role."""

    channel: str
    issued_at: datetime
    _seal: object = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._seal is not _SEAL:
            raise TrustedCredentialError("TrustedContext can only be created by TrustedChannelGate")

    def to_dict(self) -> dict[str, str]:
        return {"channel": self.channel, "issued_at": self.issued_at.isoformat()}


class TrustedChannelGate:
    """
    Issues and verifies system credentials.

    With no secret configured the gate is closed: `issue` and `verify` both raise.
    """

    def __init__(
        self,
        secret: str | None,
        channels: Iterable[str],
        issuer: str = "tenant-authz-system",
        ttl_seconds: int = 300,
    ) -> None:
        if secret is not None and len(secret.encode("utf-8")) < _MIN_SECRET_BYTES:
            raise ValueError(f"trusted channel secret must be at least {_MIN_SECRET_BYTES} bytes")
        self._secret = secret
        self._channels = frozenset(channels)
        self._issuer = issuer
        self._ttl = ttl_seconds

    @classmethod
    def from_settings(cls, settings, channels: Iterable[str]) -> TrustedChannelGate:
        return cls(
            secret=settings.trusted_channel_secret,
            channels=channels,
            issuer=settings.trusted_channel_issuer,
            ttl_seconds=settings.trusted_token_ttl_seconds,
        )

    @property
    def enabled(self) -> bool:
        return self._secret is not None

    @property
    def channels(self) -> frozenset[str]:
        return self._channels

    def issue(self, channel: str, ttl_seconds: int | None = None) -> str:
        """Mint a system credential for a configured channel (used by jobs and tests)."""
        if self._secret is None:
            raise TrustedCredentialError("trusted channel is disabled (no secret configured)")
        if channel not in self._channels:
            raise TrustedCredentialError(f"unknown trusted channel: {channel!r}")

        now = datetime.now(timezone.utc)
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        payload = {
            "iss": self._issuer,
            "sub": channel,
            "token_use": _TOKEN_USE,
            "iat": now,
            "exp": now + timedelta(seconds=ttl),
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TrustedContext:
        """Validate a system credential and return its TrustedContext."""
        if self._secret is None:
            logger.warning("Trusted credential presented but the trusted channel is disabled")
            raise TrustedCredentialError("trusted channel is disabled")
        if not token:
            raise TrustedCredentialError("missing system credential")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                options={"require": ["exp", "iat", "iss", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("System credential expired")
            raise TrustedCredentialError("system credential expired") from e
        except jwt.InvalidTokenError as e:
            logger.warning("System credential rejected: %s", type(e).__name__)
            raise TrustedCredentialError("invalid system credential") from e

        if payload.get("token_use") != _TOKEN_USE:
            logger.warning("System credential rejected: token_use=%r", payload.get("token_use"))
            raise TrustedCredentialError("credential is not a system credential")

        channel = str(payload["sub"])
        if channel not in self._channels:
            logger.warning("System credential rejected: unknown channel=%s", channel)
            raise TrustedCredentialError(f"unknown trusted channel: {channel!r}")

        issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
        return TrustedContext(channel=channel, issued_at=issued_at, _seal=_SEAL)

    def with_trusted_credential(self, credential: TrustedContext, operation: Operation | str) -> Decision:
        """Allow `operation` for a verified system caller."""
        if not isinstance(credential, TrustedContext):
            raise TrustedCredentialError("a verified TrustedContext is required")
        op = Operation(operation)
        logger.info("Trusted channel %s allowed operation=%s", credential.channel, op.value)
        return Decision.allow("trusted_channel")

from __future__ import annotations

import logging
from typing import Any, Mapping

from tenant_authz.bootstrap import BootstrapManager, ClaimResult
from tenant_authz.directory.base import PrincipalDirectory, PrincipalRecord, ReadOnlyPrincipals
from tenant_authz.errors import AlreadyAssigned
from tenant_authz.policy.config import PolicyConfig
from tenant_authz.policy.context import AuthorizationContext, Operation, Role, Target
from tenant_authz.policy.decisions import Decision
from tenant_authz.policy.evaluator import AnyContext, PolicyEvaluator
from tenant_authz.resolver import ContextResolver
from tenant_authz.trusted import TrustedChannelGate

logger = logging.getLogger(__name__)

PRINCIPAL_KIND = "principal"
_PRINCIPAL_FIELDS = frozenset({"email", "display_name", "role", "organization_id", "is_active"})


class AuthorizationEngine:
    """
    The three operations application code calls:

        ctx = engine.resolve_context(principal_id)
        decision = engine.authorize(ctx, "task", "update", Target.of(task, ["status"]))
        result = engine.claim_admin(principal_id, organization_id)

    The engine does storage I/O only against the Principal Directory; resource
    rows are passed in by the caller, which already queried them.
    """

    def __init__(
        self,
        directory: PrincipalDirectory,
        evaluator: PolicyEvaluator | None = None,
        gate: TrustedChannelGate | None = None,
        bootstrap: BootstrapManager | None = None,
    ) -> None:
        self._directory = directory
        self._evaluator = evaluator or PolicyEvaluator()
        self._gate = gate or TrustedChannelGate(secret=None, channels=self._evaluator.config.trusted_channels)
        self._bootstrap = bootstrap or BootstrapManager(directory)
        self._resolver = ContextResolver(ReadOnlyPrincipals(directory))

    @classmethod
    def from_settings(cls, directory: PrincipalDirectory, settings, config: PolicyConfig) -> AuthorizationEngine:
        return cls(
            directory,
            evaluator=PolicyEvaluator(config),
            gate=TrustedChannelGate.from_settings(settings, config.trusted_channels),
            bootstrap=BootstrapManager.from_settings(directory, settings),
        )

    @property
    def directory(self) -> PrincipalDirectory:
        return self._directory

    @property
    def gate(self) -> TrustedChannelGate:
        return self._gate

    @property
    def bootstrap(self) -> BootstrapManager:
        return self._bootstrap

    # ---- Public contract ------------------------------------------------------------

    def resolve_context(self, principal_id: str) -> AuthorizationContext:
        return self._resolver.resolve(principal_id)

    def authorize(
        self,
        context: AnyContext,
        resource_kind: str,
        operation: Operation | str,
        target: Target,
    ) -> Decision:
        return self._evaluator.authorize(context, resource_kind, operation, target)

    def claim_admin(self, principal_id: str, organization_id: str) -> ClaimResult:
        return self._bootstrap.claim_admin(principal_id, organization_id)

    def require(
        self,
        context: AnyContext,
        resource_kind: str,
        operation: Operation | str,
        target: Target,
    ) -> Decision:
        """Like authorize, but a Deny raises PermissionDenied."""
        decision = self.authorize(context, resource_kind, operation, target)
        decision.raise_for_deny()
        return decision

    # ---- Principal mutations --------------------------------------------------------

    def update_principal(
        self,
        context: AnyContext,
        principal_id: str,
        changes: Mapping[str, Any],
    ) -> PrincipalRecord:
        """
        Apply a policy-approved update to a principal.

        Admins of the principal's organization may change anything; a principal
        may change its own self-service fields; everything else is denied.
        """

        unknown = set(changes) - _PRINCIPAL_FIELDS
        if unknown:
            raise ValueError(f"unknown principal fields: {sorted(unknown)}")
        nulls = sorted(k for k, v in changes.items() if v is None)
        if nulls:
            raise ValueError(f"principal fields cannot be null: {nulls}")
        if "is_active" in changes and not isinstance(changes["is_active"], bool):
            raise ValueError("is_active must be a boolean")
        if not changes:
            return self._directory.get(principal_id)
        if "role" in changes:
            changes = {**changes, "role": Role(changes["role"])}

        current = self._directory.get(principal_id)
        self.require(context, PRINCIPAL_KIND, Operation.UPDATE, Target.of(current, changes.keys()))

        # Every check that can fail runs before the first write.
        if "organization_id" in changes:
            if current.organization_id is not None:
                raise AlreadyAssigned(principal_id, current.organization_id)
            self._directory.get_organization(changes["organization_id"])

        updated = current
        profile_changes = {k: changes[k] for k in ("email", "display_name") if k in changes}
        if changes.get("is_active") is True:
            profile_changes["is_active"] = True
        if profile_changes:
            updated = self._directory.upsert(updated.with_changes(**profile_changes))
        if "organization_id" in changes:
            updated = self._directory.set_organization(principal_id, changes["organization_id"])
        if "role" in changes:
            updated = self._directory.set_role(principal_id, changes["role"])
        if changes.get("is_active") is False:
            updated = self._directory.deactivate(principal_id)

        logger.info("Principal=%s updated fields=%s", principal_id, sorted(changes))
        return updated

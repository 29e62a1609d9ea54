"""
Policy evaluator: the ordered rule list.

Pure function of (context, resource kind, operation, target) plus the static
policy configuration. It never queries storage, so every rule can be unit
tested without a database.

Rules, first match wins:
    1. admin of the target's tenant          -> allow
    2. create inside own tenant              -> allow
    3. read inside own tenant                -> allow
    4. own row of a self-service kind        -> allow read, and update of self_update_fields only
    5. trusted channel                       -> allow
    6. otherwise                             -> deny(cross_tenant | insufficient_role)

No other allow exists. A missing context is denied before any rule runs.
"""

from __future__ import annotations

import logging
from typing import Callable, Union

from tenant_authz.policy.config import PolicyConfig
from tenant_authz.policy.context import AuthorizationContext, Operation, Target
from tenant_authz.policy.decisions import Decision, DenyReason
from tenant_authz.trusted import TrustedContext

logger = logging.getLogger(__name__)

AnyContext = Union[AuthorizationContext, TrustedContext, None]
Rule = Callable[["PolicyEvaluator", AnyContext, str, Operation, Target], Union[Decision, None]]


def _same_tenant(context: AuthorizationContext, target: Target) -> bool:
    return target.organization_id is not None and target.organization_id == context.organization_id


# ---- Rules ---------------------------------------------------------------------------


def _admin_of_tenant(evaluator, context, kind, operation, target):
    if isinstance(context, AuthorizationContext) and context.is_admin and _same_tenant(context, target):
        return Decision.allow("admin_of_tenant")
    return None


def _create_in_tenant(evaluator, context, kind, operation, target):
    if isinstance(context, AuthorizationContext) and operation is Operation.CREATE and _same_tenant(context, target):
        return Decision.allow("create_in_tenant")
    return None


def _read_in_tenant(evaluator, context, kind, operation, target):
    if isinstance(context, AuthorizationContext) and operation is Operation.READ and _same_tenant(context, target):
        return Decision.allow("read_in_tenant")
    return None


def _self_service(evaluator, context, kind, operation, target):
    if not isinstance(context, AuthorizationContext):
        return None
    if not evaluator.config.resource(kind).self_service:
        return None
    if target.id is None or target.id != context.principal_id:
        return None

    if operation is Operation.READ:
        return Decision.allow("self_service")
    if operation is Operation.UPDATE:
        allowed_fields = evaluator.config.self_update_fields(kind)
        # An update that does not say what it writes is not limited, so it is not self-service.
        if target.fields and target.fields <= allowed_fields:
            return Decision.allow("self_service")
    return None


def _trusted_channel(evaluator, context, kind, operation, target):
    if isinstance(context, TrustedContext):
        return Decision.allow("trusted_channel")
    return None


RULES: tuple[Rule, ...] = (
    _admin_of_tenant,
    _create_in_tenant,
    _read_in_tenant,
    _self_service,
    _trusted_channel,
)


# ---- Evaluator -----------------------------------------------------------------------


class PolicyEvaluator:
    """
    Stateless evaluator built from a PolicyConfig.

    Usage:
        evaluator = PolicyEvaluator(load_policy_config(Path("config/authz.yaml")))
        decision = evaluator.authorize(ctx, "task", "update", Target.of(task, ["status"]))
    """

    def __init__(self, config: PolicyConfig | None = None) -> None:
        self._config = config or PolicyConfig()

    @property
    def config(self) -> PolicyConfig:
        return self._config

    def authorize(
        self,
        context: AnyContext,
        resource_kind: str,
        operation: Operation | str,
        target: Target,
    ) -> Decision:
        op = Operation(operation)
        # Unknown kinds are a programming error, raised before any decision.
        self._config.resource(resource_kind)

        if context is None:
            logger.debug("AUTHZ: denied (no context) kind=%s op=%s", resource_kind, op.value)
            return Decision.deny(DenyReason.MISSING_CONTEXT, rule="missing_context")

        for rule in RULES:
            decision = rule(self, context, resource_kind, op, target)
            if decision is not None:
                logger.debug(
                    "AUTHZ: allowed rule=%s context=%s kind=%s op=%s target=%s",
                    decision.rule,
                    _describe(context),
                    resource_kind,
                    op.value,
                    target.id,
                )
                return decision

        decision = _default_deny(context, target)
        logger.debug(
            "AUTHZ: denied reason=%s context=%s kind=%s op=%s target=%s target_org=%s fields=%s",
            decision.reason.value if decision.reason else None,
            _describe(context),
            resource_kind,
            op.value,
            target.id,
            target.organization_id,
            sorted(target.fields),
        )
        return decision


def _default_deny(context: AnyContext, target: Target) -> Decision:
    if isinstance(context, AuthorizationContext) and target.organization_id != context.organization_id:
        return Decision.deny(DenyReason.CROSS_TENANT)
    return Decision.deny(DenyReason.INSUFFICIENT_ROLE)


def _describe(context: AnyContext) -> str:
    if isinstance(context, AuthorizationContext):
        return f"{context.principal_id}@{context.organization_id}/{context.role.value}"
    if isinstance(context, TrustedContext):
        return f"trusted:{context.channel}"
    return "none"


_default_evaluator = PolicyEvaluator()


def authorize(
    context: AnyContext,
    resource_kind: str,
    operation: Operation | str,
    target: Target,
) -> Decision:
    """Evaluate with the built-in default policy configuration."""
    return _default_evaluator.authorize(context, resource_kind, operation, target)

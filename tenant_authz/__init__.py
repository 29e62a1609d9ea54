"""
Multi-tenant role-based authorization engine.

Application code needs three calls: `AuthorizationEngine.resolve_context`,
`AuthorizationEngine.authorize` and `AuthorizationEngine.claim_admin`.
Run the HTTP seam with `uvicorn --factory tenant_authz.main:create_app`.
"""

from .bootstrap import BootstrapManager, BootstrapState, ClaimResult
from .engine import AuthorizationEngine
from .errors import (
    AlreadyAssigned,
    AlreadyHasAdmin,
    AuthorizationError,
    CrossTenant,
    InactivePrincipal,
    InsufficientRole,
    MissingContext,
    NotAMember,
    PermissionDenied,
)
from .policy.context import AuthorizationContext, Operation, Role, Target
from .policy.decisions import Decision, DenyReason
from .policy.evaluator import PolicyEvaluator, authorize
from .resolver import ContextResolver
from .trusted import TrustedChannelGate, TrustedContext

__all__ = [
    "AlreadyAssigned",
    "AlreadyHasAdmin",
    "AuthorizationContext",
    "AuthorizationEngine",
    "AuthorizationError",
    "BootstrapManager",
    "BootstrapState",
    "ClaimResult",
    "ContextResolver",
    "CrossTenant",
    "Decision",
    "DenyReason",
    "InactivePrincipal",
    "InsufficientRole",
    "MissingContext",
    "NotAMember",
    "Operation",
    "PermissionDenied",
    "PolicyEvaluator",
    "Role",
    "Target",
    "TrustedChannelGate",
    "TrustedContext",
    "authorize",
]

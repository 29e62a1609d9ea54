from __future__ import annotations

import enum
from dataclasses import dataclass

from tenant_authz.errors import CrossTenant, InsufficientRole, PermissionDenied


class DenyReason(str, enum.Enum):
    CROSS_TENANT = "cross_tenant"
    INSUFFICIENT_ROLE = "insufficient_role"
    MISSING_CONTEXT = "missing_context"


@dataclass(frozen=True)
class Decision:
    """Outcome of one authorization check. `rule` names the rule that decided."""

    allowed: bool
    rule: str
    reason: DenyReason | None = None

    @classmethod
    def allow(cls, rule: str) -> Decision:
        return cls(allowed=True, rule=rule)

    @classmethod
    def deny(cls, reason: DenyReason, rule: str = "default_deny") -> Decision:
        return cls(allowed=False, rule=rule, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed

    def raise_for_deny(self) -> None:
        """Raise the matching PermissionDenied subclass when this is a Deny."""
        if self.allowed:
            return
        if self.reason is DenyReason.CROSS_TENANT:
            raise CrossTenant(f"denied by {self.rule}: organization mismatch")
        if self.reason is DenyReason.INSUFFICIENT_ROLE:
            raise InsufficientRole(f"denied by {self.rule}: role lacks privilege")
        raise PermissionDenied(f"denied by {self.rule}: {self.reason.value if self.reason else 'denied'}")

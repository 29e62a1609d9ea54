from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable


class Role(str, enum.Enum):
    ADMIN = "admin"
    MEMBER = "member"


class Operation(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class AuthorizationContext:
    """
    Per-request authorization context.

    Computed once by the ContextResolver and treated as immutable for the
    request's duration. It is small enough to attach to:
    - request.state (FastAPI request lifetime)
    - Session.info (SQLAlchemy session lifetime)
    """

    principal_id: str
    organization_id: str
    role: Role

    def __post_init__(self) -> None:
        if not self.principal_id or not self.organization_id:
            raise ValueError("AuthorizationContext requires principal_id and organization_id")
        # Accept plain strings from callers, store the enum.
        object.__setattr__(self, "role", Role(self.role))

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def to_dict(self) -> dict[str, str]:
        return {
            "principal_id": self.principal_id,
            "organization_id": self.organization_id,
            "role": self.role.value,
        }


@dataclass(frozen=True)
class Target:
    """
    The row an operation applies to.

    For `create` this is the row about to be inserted (id may be None).
    For `update`, `fields` names the columns being written.
    """

    id: str | None
    organization_id: str | None
    fields: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, row: Any, fields: Iterable[str] = ()) -> Target:
        """Build a Target from anything with `id` and `organization_id` attributes."""
        return cls(
            id=getattr(row, "id", None),
            organization_id=getattr(row, "organization_id", None),
            fields=frozenset(fields),
        )

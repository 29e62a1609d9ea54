"""
Context Resolver.

Derives `{principal_id, organization_id, role}` with exactly one lookup into
the Principal Directory. It is handed a PrincipalReader and nothing else, so it
has no way to reach a resource table: a tenant check that itself runs a tenant
check cannot happen here.
"""

from __future__ import annotations

import logging

from tenant_authz.directory.base import PrincipalReader
from tenant_authz.errors import InactivePrincipal, MissingContext, PrincipalNotFound
from tenant_authz.policy.context import AuthorizationContext

logger = logging.getLogger(__name__)


class ContextResolver:
    def __init__(self, principals: PrincipalReader) -> None:
        self._principals = principals

    def resolve(self, principal_id: str) -> AuthorizationContext:
        """
        Return the AuthorizationContext for `principal_id`.

        Raises MissingContext when the principal has no profile or no
        organization yet, and InactivePrincipal when it was deactivated.
        """

        if not principal_id:
            raise MissingContext(str(principal_id), detail="empty principal id")

        try:
            principal = self._principals.get(principal_id)
        except PrincipalNotFound:
            logger.info("No profile for principal=%s; bootstrap required", principal_id)
            raise MissingContext(principal_id, detail="no profile") from None

        if not principal.is_active:
            logger.info("Deactivated principal=%s presented for authorization", principal_id)
            raise InactivePrincipal(principal_id)

        if principal.organization_id is None:
            logger.info("Principal=%s has no organization yet; bootstrap required", principal_id)
            raise MissingContext(principal_id, detail="no organization")

        return AuthorizationContext(
            principal_id=principal.id,
            organization_id=principal.organization_id,
            role=principal.role,
        )

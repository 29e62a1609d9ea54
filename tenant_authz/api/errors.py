from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tenant_authz.errors import (
    AlreadyAssigned,
    AlreadyHasAdmin,
    MissingContext,
    OrganizationExists,
    OrganizationNotFound,
    PermissionDenied,
    PrincipalNotFound,
    TrustedCredentialError,
)

logger = logging.getLogger(__name__)


def _json(status_code: int, detail: str, message: str | None = None) -> JSONResponse:
    body = {"detail": detail}
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=body)


async def _missing_context(request: Request, exc: MissingContext) -> JSONResponse:
    return _json(status.HTTP_403_FORBIDDEN, "missing_context", exc.detail)


async def _permission_denied(request: Request, exc: PermissionDenied) -> JSONResponse:
    logger.info("Permission denied path=%s method=%s reason=%s", request.url.path, request.method, exc.reason)
    return _json(status.HTTP_403_FORBIDDEN, exc.reason, str(exc))


async def _not_found(request: Request, exc: LookupError) -> JSONResponse:
    return _json(status.HTTP_404_NOT_FOUND, "not_found", str(exc))


async def _conflict(request: Request, exc: Exception) -> JSONResponse:
    return _json(status.HTTP_409_CONFLICT, "conflict", str(exc))


async def _untrusted(request: Request, exc: TrustedCredentialError) -> JSONResponse:
    # The message never contains the token itself.
    return _json(status.HTTP_401_UNAUTHORIZED, "invalid_system_credential", str(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MissingContext, _missing_context)
    app.add_exception_handler(PermissionDenied, _permission_denied)
    app.add_exception_handler(PrincipalNotFound, _not_found)
    app.add_exception_handler(OrganizationNotFound, _not_found)
    app.add_exception_handler(AlreadyAssigned, _conflict)
    app.add_exception_handler(AlreadyHasAdmin, _conflict)
    app.add_exception_handler(OrganizationExists, _conflict)
    app.add_exception_handler(TrustedCredentialError, _untrusted)

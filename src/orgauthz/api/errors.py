"""Exception handlers that translate RBAC errors to HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from orgauthz.common.logging import log_context
from orgauthz.core.rbac.errors import (
    AccessDeniedError,
    AssignmentNotFoundError,
    AssignmentWriteError,
    InsufficientPrivilegeError,
    ResolutionError,
    ScopeMismatchError,
    UnknownOperationError,
    UnknownPermissionError,
    UnknownRoleError,
)

logger = logging.getLogger(__name__)

ACCESS_DENIED = "access denied"

# Anything on the decision path renders as the same opaque 403.
_DENIAL_ERRORS: tuple[type[Exception], ...] = (
    AccessDeniedError,
    InsufficientPrivilegeError,
    ResolutionError,
    UnknownOperationError,
    UnknownPermissionError,
    UnknownRoleError,
)


def _handle_denial(request: Request, exc: Exception) -> JSONResponse:
    logger.info(
        "rbac.request.denied",
        extra=log_context(
            path=request.url.path,
            error=type(exc).__name__,
            reason=getattr(exc, "reason", None),
        ),
    )
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"detail": ACCESS_DENIED},
    )


def _handle_scope_mismatch(_request: Request, exc: ScopeMismatchError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


def _handle_not_found(_request: Request, exc: AssignmentNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc) or "Role assignment not found"},
    )


def _handle_write_failure(request: Request, exc: AssignmentWriteError) -> JSONResponse:
    logger.warning("rbac.request.write_failed", extra=log_context(path=request.url.path, error=str(exc)))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Role assignment could not be stored; retry the request"},
    )


def register_rbac_exception_handlers(app: FastAPI) -> None:
    """Attach RBAC handlers to the FastAPI app."""

    for error in _DENIAL_ERRORS:
        app.add_exception_handler(error, _handle_denial)
    app.add_exception_handler(ScopeMismatchError, _handle_scope_mismatch)
    app.add_exception_handler(AssignmentNotFoundError, _handle_not_found)
    app.add_exception_handler(AssignmentWriteError, _handle_write_failure)


__all__ = ["ACCESS_DENIED", "register_rbac_exception_handlers"]

# printhub/core/exceptions.py
from __future__ import annotations

"""
Domain exceptions & FastAPI handlers for PrintHub.

- Domain taxonomy (validation, not found, busy printer, already registered, upstream unavailable)
- Global FastAPI handlers with structured logging via printhub.core.logging
- RFC 7807-style JSON body (problem+json-compatible fields)
- IntegrityError / OperationalError / SQLAlchemyError mapping
"""

import re
from typing import Any, Dict, Mapping, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from printhub.core.logging import bound_context, get_logger, redact_secrets

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Custom domain exceptions
# -----------------------------------------------------------------------------


class PrintHubException(Exception):
    """Base domain exception."""

    default_code: str = "ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        http_status: Optional[int] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.extra = extra or {}
        self.headers = headers or {}
        self.http_status = http_status
        super().__init__(self.message)


class AuthenticationError(PrintHubException):
    """Caller identity could not be established."""

    default_code = "AUTHENTICATION_REQUIRED"


class AuthorizationError(PrintHubException):
    """Caller's role does not allow the operation."""

    default_code = "FORBIDDEN"


class PrintHubValidationError(PrintHubException):
    """Malformed or missing input. Raised before any side effect runs."""

    default_code = "VALIDATION_ERROR"


class MissingPrinterError(PrintHubValidationError):
    """Starting production without naming a printer."""

    default_code = "MISSING_PRINTER"


class NotFoundError(PrintHubException):
    """Order, printer or product does not exist in the caller's tenant."""

    default_code = "NOT_FOUND"


class ConflictError(PrintHubException):
    """Resource state conflicts with the requested operation."""

    default_code = "CONFLICT"


class ResourceBusyError(ConflictError):
    """Printer is not idle."""

    default_code = "RESOURCE_BUSY"


class AlreadyRegisteredError(ConflictError):
    """Delivery was already reconciled into a sale."""

    default_code = "ALREADY_REGISTERED"


class InvalidTransitionError(ConflictError):
    """Status change not allowed from the current state."""

    default_code = "INVALID_TRANSITION"


class OrderNotDeliveredError(ConflictError):
    """Feedback submitted for an order that has not been delivered."""

    default_code = "ORDER_NOT_DELIVERED"


class UpstreamUnavailableError(PrintHubException):
    """Catalog, messaging channel or broker could not be reached."""

    default_code = "UPSTREAM_UNAVAILABLE"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _problem_json(
    title: str,
    detail: str,
    status_code: int,
    code: Optional[str] = None,
    instance: Optional[str] = None,
    extras: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """RFC 7807 inspired body (application/problem+json compatible)."""
    body: Dict[str, Any] = {
        "type": f"https://httpstatuses.com/{status_code}",
        "title": title,
        "status": status_code,
        "detail": detail,
        "code": code,
    }
    if instance:
        body["instance"] = instance
    if extras:
        body["extra"] = redact_secrets(dict(extras))
    return {k: v for k, v in body.items() if v is not None}


def _extract_request_id(headers: Mapping[str, str]) -> str:
    for k in ("x-request-id", "x-correlation-id"):
        if k in headers:
            return headers.get(k, "")
    return ""


def _json_problem_response(
    status_code: int,
    content: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers or {},
        media_type="application/problem+json",
    )


_DUP_RE = re.compile(r"duplicate key|unique constraint|unique violation", re.IGNORECASE)
_FK_RE = re.compile(r"foreign key", re.IGNORECASE)
_NOTNULL_RE = re.compile(r"not null", re.IGNORECASE)


def _parse_integrity_error(exc: IntegrityError) -> Tuple[str, str]:
    text = str(getattr(exc, "orig", exc))
    if _DUP_RE.search(text):
        return ("A record with this value already exists", "DUPLICATE_VALUE")
    if _FK_RE.search(text):
        return ("Referenced record does not exist", "FOREIGN_KEY_ERROR")
    if _NOTNULL_RE.search(text):
        return ("Required field is missing", "REQUIRED_FIELD")
    return ("A database constraint was violated", "INTEGRITY_ERROR")


def _status_and_title(exc: PrintHubException) -> Tuple[int, str]:
    if isinstance(exc, AuthenticationError):
        return status.HTTP_401_UNAUTHORIZED, "Authentication error"
    if isinstance(exc, AuthorizationError):
        return status.HTTP_403_FORBIDDEN, "Authorization error"
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND, "Resource not found"
    if isinstance(exc, ResourceBusyError):
        return status.HTTP_409_CONFLICT, "Resource busy"
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT, "Conflict"
    if isinstance(exc, UpstreamUnavailableError):
        return status.HTTP_502_BAD_GATEWAY, "Upstream service error"
    if isinstance(exc, PrintHubValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation error"
    return status.HTTP_400_BAD_REQUEST, "Bad request"


# -----------------------------------------------------------------------------
# Exception Handlers (FastAPI)
# -----------------------------------------------------------------------------


async def printhub_exception_handler(request: Request, exc: PrintHubException) -> JSONResponse:
    """Maps domain exceptions to HTTP status codes."""
    sc, title = _status_and_title(exc)
    sc = exc.http_status or sc

    with bound_context(request_id=_extract_request_id(request.headers) or None):
        logger.warning(
            "domain_exception",
            exception_type=type(exc).__name__,
            message=exc.message,
            code=exc.code,
            path=request.url.path,
            method=request.method,
            extra=exc.extra,
        )

    body = _problem_json(
        title=title,
        detail=exc.message,
        status_code=sc,
        code=exc.code,
        instance=str(request.url),
        extras=exc.extra,
    )
    return _json_problem_response(sc, body, headers=exc.headers)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for FastAPI RequestValidationError (body/query/path validation)."""
    errs = exc.errors()
    with bound_context(request_id=_extract_request_id(request.headers) or None):
        logger.warning("request_validation_error", path=request.url.path, method=request.method)

    body = _problem_json(
        title="Validation error",
        detail="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="REQUEST_VALIDATION_ERROR",
        instance=str(request.url),
        extras={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errs]},
    )
    return _json_problem_response(status.HTTP_422_UNPROCESSABLE_ENTITY, body)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    body = _problem_json(
        title=f"HTTP {exc.status_code}",
        detail=str(exc.detail),
        status_code=exc.status_code,
        code=f"HTTP_{exc.status_code}",
        instance=str(request.url),
    )
    return _json_problem_response(exc.status_code, body, headers=exc.headers or {})


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    msg, code = _parse_integrity_error(exc)
    with bound_context(request_id=_extract_request_id(request.headers) or None):
        logger.warning(
            "db_integrity_error",
            error=str(getattr(exc, "orig", exc)),
            path=request.url.path,
            method=request.method,
            code=code,
        )

    body = _problem_json(
        title="Integrity error",
        detail=msg,
        status_code=status.HTTP_409_CONFLICT,
        code=code,
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_409_CONFLICT, body)


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Operational DB errors (timeouts, connection issues)."""
    with bound_context(request_id=_extract_request_id(request.headers) or None):
        logger.error("db_operational_error", exc_info=exc, path=request.url.path, method=request.method)

    body = _problem_json(
        title="Database unavailable",
        detail="Database is temporarily unavailable. Please retry later.",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code="DB_UNAVAILABLE",
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_503_SERVICE_UNAVAILABLE, body)


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    with bound_context(request_id=_extract_request_id(request.headers) or None):
        logger.error("db_error", exc_info=exc, path=request.url.path, method=request.method)

    body = _problem_json(
        title="Database error",
        detail="Database operation failed",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="DB_ERROR",
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, body)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for uncaught exceptions."""
    with bound_context(request_id=_extract_request_id(request.headers) or None):
        logger.error("unhandled_exception", exc_info=exc, path=request.url.path, method=request.method)

    body = _problem_json(
        title="Internal server error",
        detail="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="INTERNAL_ERROR",
        instance=str(request.url),
    )
    return _json_problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, body)


# -----------------------------------------------------------------------------
# Registration
# -----------------------------------------------------------------------------


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(PrintHubException, printhub_exception_handler)

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    app.add_exception_handler(IntegrityError, integrity_error_handler)  # 409
    app.add_exception_handler(OperationalError, operational_error_handler)  # 503
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)  # 500

    app.add_exception_handler(Exception, global_exception_handler)


__all__ = [
    "PrintHubException",
    "AuthenticationError",
    "AuthorizationError",
    "PrintHubValidationError",
    "MissingPrinterError",
    "NotFoundError",
    "ConflictError",
    "ResourceBusyError",
    "AlreadyRegisteredError",
    "InvalidTransitionError",
    "OrderNotDeliveredError",
    "UpstreamUnavailableError",
    "register_exception_handlers",
]

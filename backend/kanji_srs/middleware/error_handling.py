"""
Error Handling

Typed exceptions for the review services and the middleware that turns
them into JSON error responses.

Failure taxonomy:
    ServiceError                  500  service_error
    ├── ValidationError           422  validation_error
    ├── NotFoundError             404  not_found
    ├── SupplyExhaustedError      409  supply_exhausted
    └── ConcurrencyConflictError  409  concurrency_conflict

Response body (ServiceError and unexpected errors alike):
    {"error": <code>, "message": <text>, "error_id": <8 hex chars>,
     "details": <dict | null>, "timestamp": <ISO-8601>}

``details`` is only filled in when the app runs with DEBUG on. The
error_id appears in the matching log line, so a client report can be
traced back to the server log.

Usage:
    from kanji_srs.middleware.error_handling import setup_error_handling, NotFoundError

    setup_error_handling(app, debug=settings.DEBUG)

    raise NotFoundError(f"Item {item_id} not found")
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


# =============================================================================
# Service Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for review service failures.

    Subclasses fix ``status_code`` and ``error_code``; both can also be
    overridden per instance.
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code


class ValidationError(ServiceError):
    """Bad input that got past request validation, e.g. a simulate count past retirement."""

    status_code = 422
    error_code = "validation_error"


class NotFoundError(ServiceError):
    """Unknown item, study set, or missing progress record."""

    status_code = 404
    error_code = "not_found"


class SupplyExhaustedError(ServiceError):
    """
    No new items left to add to a study set.

    Session completion reports this in its result instead of failing.
    """

    status_code = 409
    error_code = "supply_exhausted"


class ConcurrencyConflictError(ServiceError):
    """
    A progress record changed between read and write.

    Nothing was written; the caller reloads and retries.
    """

    status_code = 409
    error_code = "concurrency_conflict"


# =============================================================================
# Error Handling Middleware
# =============================================================================


def _error_body(
    error_code: str, message: str, error_id: str, details: Optional[dict]
) -> dict[str, Any]:
    return {
        "error": error_code,
        "message": message,
        "error_id": error_id,
        "details": details,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Converts exceptions escaping a route into JSON error responses.

    HTTPException is left to FastAPI. ServiceErrors keep their status code;
    anything else becomes a 500 without internals unless ``debug`` is set.
    """

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except HTTPException:
            raise
        except ServiceError as e:
            return self._service_error_response(request, e)
        except Exception as e:
            return self._unexpected_error_response(request, e)

    def _service_error_response(self, request: Request, error: ServiceError) -> JSONResponse:
        error_id = uuid4().hex[:8]
        level = logging.WARNING if error.status_code < 500 else logging.ERROR
        logger.log(
            level,
            f"[{error_id}] {request.method} {request.url.path} -> "
            f"{error.status_code} {error.error_code}: {error.message}",
            extra={"error_id": error_id, "details": error.details},
        )
        return JSONResponse(
            status_code=error.status_code,
            content=_error_body(
                error.error_code,
                error.message,
                error_id,
                error.details if self.debug else None,
            ),
        )

    def _unexpected_error_response(self, request: Request, error: Exception) -> JSONResponse:
        error_id = uuid4().hex[:8]
        trace = traceback.format_exc()
        logger.error(
            f"[{error_id}] {request.method} {request.url.path} -> 500 "
            f"{type(error).__name__}: {error}",
            extra={"error_id": error_id, "traceback": trace},
        )

        details = None
        if self.debug:
            details = {
                "exception": type(error).__name__,
                "message": str(error),
                "traceback": trace,
            }
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error", "An unexpected error occurred", error_id, details
            ),
        )


def setup_error_handling(app: FastAPI, debug: bool = False) -> None:
    """
    Install the error handling middleware.

    Args:
        app: FastAPI application instance
        debug: Include exception details (and tracebacks) in responses
    """
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)
    logger.info(f"Error handling middleware enabled (debug={debug})")

"""
Middleware Package

Provides FastAPI middleware and the service exception taxonomy:
- Error handling (structured JSON error bodies with correlation IDs)
"""

from kanji_srs.middleware.error_handling import (
    ConcurrencyConflictError,
    ErrorHandlingMiddleware,
    NotFoundError,
    ServiceError,
    SupplyExhaustedError,
    ValidationError,
    setup_error_handling,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "setup_error_handling",
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "SupplyExhaustedError",
    "ConcurrencyConflictError",
]

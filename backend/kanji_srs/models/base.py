"""
API Model Bases

Every request body derives from StrictRequest and every response body from
StrictResponse.

- StrictRequest forbids unknown fields, so a misspelled "is_corect" is a
  422 rather than a silently dropped answer.
- StrictResponse reads attributes (from_attributes) so services can hand
  back ProgressRecord dataclasses and let FastAPI serialize them.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class StrictRequest(BaseModel):
    """Base for request bodies: unknown fields rejected, strings stripped."""

    model_config = ConfigDict(
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )


class StrictResponse(BaseModel):
    """Base for response bodies: built from objects, extra attributes ignored."""

    model_config = ConfigDict(
        extra="ignore",
        validate_default=True,
        from_attributes=True,
    )


class ErrorDetail(StrictResponse):
    """
    Error body written by ErrorHandlingMiddleware.

    Only used to document error responses in the OpenAPI schema.
    """

    error: str
    message: str
    error_id: str
    details: Optional[dict] = None
    timestamp: datetime

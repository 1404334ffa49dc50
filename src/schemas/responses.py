"""Shared error envelope schemas, used to document error responses in OpenAPI."""

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """A single field-level or contextual error detail."""

    field: str | None = None
    message: str


class ErrorBody(BaseModel):
    """Structured error body returned inside every error response."""

    code: str
    message: str
    details: list[ErrorDetail] = []
    request_id: str = Field(alias="requestId")

    model_config = {"populate_by_name": True}


class ErrorResponse(BaseModel):
    """Top-level error envelope."""

    error: ErrorBody


# Errors every tenant-scoped endpoint can return. A 401 covers every tenant
# resolution failure with the same body.
TENANT_ERROR_RESPONSES: dict[int | str, dict] = {
    401: {"model": ErrorResponse, "description": "Authentication required"},
    403: {"model": ErrorResponse, "description": "Operation not permitted"},
    404: {"model": ErrorResponse, "description": "Not found in the caller's tenant"},
}

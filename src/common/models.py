"""Response envelopes shared by checkout services."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Payload of the health endpoint."""

    status: str = "healthy"
    service: str
    version: str
    environment: str = "development"


class ErrorResponse(BaseModel):
    """Body returned for unhandled server errors."""

    error: str
    detail: str | None = None
    status_code: int = 500
    path: str | None = None

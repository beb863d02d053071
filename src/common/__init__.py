"""Shared configuration, logging and API models for checkout services."""

from common.config import Settings
from common.logging import setup_logging
from common.models import ErrorResponse, HealthResponse

__all__ = ["Settings", "setup_logging", "HealthResponse", "ErrorResponse"]

"""
Shared error handling for the ABAC decision engine.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AbacException(Exception):
    """Base exception for the decision engine."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AbacException):
    """Caller supplied malformed input."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ConfigurationError(AbacException):
    """Policy or engine configuration is invalid."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class AttributeStoreError(AbacException):
    """Attribute store is unreachable or failed."""

    def __init__(self, message: str = "Attribute store error", details: Optional[Dict[str, Any]] = None,
                 code: str = "ATTRIBUTE_STORE_ERROR"):
        super().__init__(code, message, details)


class AttributeStoreTimeout(AttributeStoreError):
    """Attribute store did not answer in time."""

    def __init__(self, message: str = "Attribute store timed out", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="ATTRIBUTE_STORE_TIMEOUT")

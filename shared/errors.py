"""
Shared error handling for the RiftRadar lookup layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for lookup layer services."""

    http_status = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    http_status = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(AccessLayerException):
    """Upstream has no such entity. Terminal, never retried."""

    http_status = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class UpstreamError(AccessLayerException):
    """Transient upstream failure (timeout, 5xx, transport error, open circuit)."""

    http_status = 502

    def __init__(self, message: str = "Upstream error", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_ERROR", message, details)


class RateLimitedError(UpstreamError):
    """Upstream (or the local call budget) refused the call."""

    http_status = 429

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.code = "RATE_LIMITED"
        self.retry_after = retry_after
        if retry_after is not None:
            self.details.setdefault("retry_after", retry_after)


class LocalStoreError(AccessLayerException):
    """A cache tier is unavailable. Never fatal to a lookup."""

    http_status = 503

    def __init__(self, tier: str, message: str = "Local store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("LOCAL_STORE_ERROR", f"{tier}: {message}", details)
        self.tier = tier

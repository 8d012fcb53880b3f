"""
Shared error handling for the Proxy Grid gateway.

Every error that reaches a caller is rendered as ``{"error": "<message>"}``.
Messages are fixed per error class where the underlying cause could reveal
backend topology; the cause is logged server-side only.
"""

import time
from typing import Dict, Any, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    timestamp: Optional[int] = None


class GatewayError(Exception):
    """Base exception for gateway failures that terminate a request."""

    status_code: int = 500

    def __init__(
        self,
        code: str,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        self.headers = headers or {}
        super().__init__(message)

    def to_response(self, include_timestamp: bool = False) -> JSONResponse:
        """Convert to the uniform error response."""
        return create_error_response(
            self.message,
            self.status_code,
            headers=self.headers,
            include_timestamp=include_timestamp,
        )


class ValidationError(GatewayError):
    """Bad or missing request parameter."""

    status_code = 400

    def __init__(self, message: str = "Invalid request", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details=details)


class RateLimitExceeded(GatewayError):
    """Client exhausted its request budget for the current window."""

    status_code = 429

    def __init__(self, headers: Optional[Dict[str, str]] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", "Too many requests", details=details, headers=headers)


class UpstreamFailure(GatewayError):
    """Network error, timeout or unusable response from the upstream backend."""

    status_code = 503

    def __init__(self, reason: str = "upstream_error", details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        super().__init__("UPSTREAM_FAILURE", "Service temporarily unavailable", details=details)


def create_error_response(
    message: str,
    status: int = 500,
    headers: Optional[Dict[str, str]] = None,
    include_timestamp: bool = False,
) -> JSONResponse:
    """Build an error response that carries only the given message."""
    body = ErrorResponse(
        error=message,
        timestamp=int(time.time() * 1000) if include_timestamp else None,
    )
    return JSONResponse(
        status_code=status,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )

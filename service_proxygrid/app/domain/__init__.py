"""
Domain logic for the Proxy Grid gateway.

Request validation, response shaping and response security headers. These
modules do no network I/O of their own.
"""

from .request_validation import EndpointClass, ValidationResult, validate_request
from .response_shaping import ResponseKind, classify_content_type, shape_response
from .security_headers import SecurityHeadersMiddleware

__all__ = [
    "EndpointClass",
    "ValidationResult",
    "validate_request",
    "ResponseKind",
    "classify_content_type",
    "shape_response",
    "SecurityHeadersMiddleware",
]

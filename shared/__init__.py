"""
Shared utilities for the Proxy Grid gateway.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- sanitization: Input sanitizers and validators

Do not import from service packages into shared/.
"""

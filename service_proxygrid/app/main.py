"""
Proxy Grid API gateway service.

Request lifecycle for ``GET {route_prefix}/{path}``::

    rate limit -> validate -> sanitize -> forward -> shape response

A rejection at any step ends the request: 429 from the rate limiter, 400
from validation and 503 for anything that goes wrong once forwarding has
started.
"""

import math
from typing import Callable, Dict, Optional

import httpx
from fastapi import Request, Response

from shared.base_service import BaseService
from shared.config import GatewayConfig
from shared.errors import RateLimitExceeded, UpstreamFailure, ValidationError
from shared.logging import set_client_key
from shared.sanitization import sanitize_input
from service_proxygrid.app.adapters.proxygrid_client import ProxyGridClient
from service_proxygrid.app.domain.request_validation import validate_request
from service_proxygrid.app.domain.response_shaping import classify_content_type, shape_response
from service_proxygrid.app.domain.security_headers import SecurityHeadersMiddleware
from service_proxygrid.app.ratelimit import (
    FixedWindowRateLimiter,
    InMemoryRateLimitStore,
    RateLimitMiddleware,
    RateLimitPolicy,
    RedisRateLimitStore,
)

# Decoded characters that would end the path component of the upstream URL.
UNSAFE_PATH_CHARS = ("?", "#")


class GatewayService(BaseService):
    """API gateway in front of the Proxy Grid aggregation backend."""

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        rate_limit_store=None,
        upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        super().__init__("proxygrid", config)

        self.route_prefix = "/" + self.config.route_prefix.strip("/")
        self.rate_limit_policy = RateLimitPolicy(
            requests=self.config.rate_limit_requests,
            window_ms=self.config.rate_limit_window_ms,
        )
        if rate_limit_store is None:
            rate_limit_store = self._create_rate_limit_store()
        limiter_kwargs = {"clock": clock} if clock is not None else {}
        self.rate_limiter = FixedWindowRateLimiter(rate_limit_store, **limiter_kwargs)
        self.rate_limit_middleware = RateLimitMiddleware(
            self.rate_limiter,
            self.rate_limit_policy,
            namespace=self.config.rate_limit_namespace,
        )

        self.upstream_client = ProxyGridClient(
            self.config.backend_url,
            backend_prefix=self.config.backend_prefix,
            secret=self.config.secret,
            timeout=self.config.upstream_timeout,
            user_agent=self.config.user_agent,
            transport=upstream_transport,
        )

        self.app.add_middleware(SecurityHeadersMiddleware, enable_hsts=self.config.is_production)
        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _create_rate_limit_store(self):
        if self.config.rate_limit_backend == "redis":
            return RedisRateLimitStore(self.config.redis_url)
        return InMemoryRateLimitStore(max_keys=self.config.rate_limit_max_keys)

    @property
    def retry_after_seconds(self) -> int:
        return max(1, math.ceil(self.rate_limit_policy.window_ms / 1000))

    async def _shutdown(self):
        await self.upstream_client.close()
        await self.rate_limiter.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        dependencies = {
            "rate_limit_store": self.config.rate_limit_backend,
            "upstream": self.upstream_client.base_url,
        }
        store = self.rate_limiter.store
        if isinstance(store, InMemoryRateLimitStore):
            dependencies["rate_limit_keys"] = str(len(store))
        return dependencies

    def _setup_gateway_routes(self):
        """Set up gateway-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "Proxy Grid API Gateway",
                "version": "1.0.0",
                "route_prefix": self.route_prefix,
            }

        @self.app.get(self.route_prefix + "/{path:path}")
        async def proxy(path: str, request: Request) -> Response:
            """Forward a validated, sanitized request to the upstream backend."""
            return await self.handle_proxy_request(request, "/" + path)

    async def handle_proxy_request(self, request: Request, pathname: str) -> Response:
        """Run one inbound request through the gateway pipeline.

        ``pathname`` is relative to the route prefix, e.g. ``/search/google``.
        """
        set_client_key(self.rate_limit_middleware.client_key(request))

        verdict = await self.rate_limit_middleware.check_request(request)
        rate_headers = verdict.headers()
        if not verdict.allowed:
            self.metrics.record_rate_limit_rejection()
            raise RateLimitExceeded(headers={"Retry-After": str(self.retry_after_seconds), **rate_headers})

        if ".." in pathname.split("/") or any(c in pathname for c in UNSAFE_PATH_CHARS):
            raise ValidationError("Invalid request path")

        # One value per key; the value validated is the value forwarded.
        params = dict(request.query_params)
        validation = validate_request(pathname, params)
        if not validation.valid:
            self.metrics.record_validation_failure(validation.endpoint_class.value)
            self.logger.info(
                "Request failed validation",
                path=pathname,
                endpoint_class=validation.endpoint_class.value,
                error=validation.error,
            )
            raise ValidationError(validation.error or "Invalid request")

        sanitized: Dict[str, str] = {}
        for key, value in params.items():
            clean_key = sanitize_input(key)
            if clean_key:
                sanitized[clean_key] = sanitize_input(value)

        upstream_request = self.upstream_client.build_request(
            pathname,
            sanitized,
            authorization=request.headers.get("Authorization"),
        )

        try:
            with self.metrics.time_operation("upstream_request_duration_seconds"):
                upstream_response = await self.upstream_client.send(upstream_request)
            kind = classify_content_type(upstream_response.headers.get("content-type"))
            response = shape_response(upstream_response, pathname, rate_headers, kind=kind)
        except UpstreamFailure as exc:
            self.metrics.record_upstream_failure(exc.reason)
            raise
        except Exception as exc:
            self.logger.error(
                "Response shaping failed",
                path=pathname,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self.metrics.record_upstream_failure("unexpected")
            raise UpstreamFailure(reason="unexpected") from exc

        self.metrics.record_upstream_response(upstream_response.status_code, kind.value)
        return response


def create_app(config: Optional[GatewayConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = GatewayService(config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()

"""
Upstream client for the Proxy Grid aggregation backend.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
from urllib.parse import quote

import httpx

from shared.logging import get_logger
from shared.errors import UpstreamFailure

BEARER_PREFIX = "Bearer "
SECRET_HEADER = "x-grid-secret"


def encode_path(pathname: str) -> str:
    """Percent-encode every segment of a decoded path, keeping the separators."""
    if not pathname:
        return ""
    return "/" + "/".join(quote(segment, safe="") for segment in pathname.lstrip("/").split("/"))


@dataclass(frozen=True)
class UpstreamRequest:
    """A single forwarded call; built once per inbound request."""

    url: str
    params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    method: str = "GET"
    timeout: float = 30.0


class ProxyGridClient:
    """Builds and issues upstream requests.

    One attempt per request, bounded by ``timeout``. Timeouts and transport
    errors are reported as :class:`UpstreamFailure`; the upstream response
    itself (any status code) is returned to the caller untouched.
    """

    def __init__(
        self,
        backend_url: str,
        backend_prefix: str = "/v1/proxygrid",
        secret: str = "",
        timeout: float = 30.0,
        user_agent: str = "proxygrid-gateway/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = backend_url.rstrip('/')
        self.backend_prefix = "/" + backend_prefix.strip("/")
        self.secret = secret
        self.timeout = timeout
        self.user_agent = user_agent
        self.logger = get_logger("proxygrid.upstream_client")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, follow_redirects=False)
        return self._client

    def build_request(
        self,
        pathname: str,
        params: Mapping[str, str],
        authorization: Optional[str] = None,
    ) -> UpstreamRequest:
        """Rewrite a gateway-relative path onto the backend's versioned prefix.

        ``pathname`` is the decoded inbound path; each segment is percent-encoded
        again so the backend receives exactly the segments that were validated.
        ``params`` must already be sanitized.
        """
        path = encode_path(pathname)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        if authorization and authorization.startswith(BEARER_PREFIX):
            headers["Authorization"] = authorization
        if self.secret:
            headers[SECRET_HEADER] = self.secret

        return UpstreamRequest(
            url=f"{self.base_url}{self.backend_prefix}{path}",
            params=dict(params),
            headers=headers,
            timeout=self.timeout,
        )

    async def send(self, upstream_request: UpstreamRequest) -> httpx.Response:
        """Issue the call and read the full body."""
        client = self._get_client()
        start_time = time.time()
        try:
            response = await client.request(
                upstream_request.method,
                upstream_request.url,
                params=upstream_request.params,
                headers=upstream_request.headers,
                timeout=upstream_request.timeout,
            )
        except httpx.TimeoutException as exc:
            self.logger.error(
                "Upstream request timed out",
                url=upstream_request.url,
                timeout=upstream_request.timeout,
                error_type=type(exc).__name__,
            )
            raise UpstreamFailure(reason="timeout", details={"error": str(exc)}) from exc
        except httpx.HTTPError as exc:
            self.logger.error(
                "Upstream request failed",
                url=upstream_request.url,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamFailure(reason="network_error", details={"error": str(exc)}) from exc

        self.logger.debug(
            "Upstream response received",
            url=upstream_request.url,
            status_code=response.status_code,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return response

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

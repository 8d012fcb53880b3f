"""
Outbound response construction from an upstream response.

The upstream content type is classified once into a :class:`ResponseKind`;
each kind has its own builder and cache policy.
"""

from enum import Enum
from typing import Callable, Dict, Mapping, Optional

import httpx
from fastapi import Response
from fastapi.responses import JSONResponse

from shared.errors import UpstreamFailure
from ..caching.cache_policy import CacheDirective, cache_control_for

BINARY_CACHE_CONTROL = CacheDirective(3600).render()
MARKDOWN_CACHE_CONTROL = CacheDirective(86400).render()
MARKDOWN_CONTENT_TYPE = "text/markdown; charset=utf-8"


class ResponseKind(str, Enum):
    BINARY = "binary"
    MARKDOWN = "markdown"
    STRUCTURED = "structured"


def classify_content_type(content_type: Optional[str]) -> ResponseKind:
    """Decide how an upstream payload is re-emitted."""
    normalized = (content_type or "").lower()
    if "image/" in normalized:
        return ResponseKind.BINARY
    if "text/markdown" in normalized:
        return ResponseKind.MARKDOWN
    return ResponseKind.STRUCTURED


def _shape_binary(upstream: httpx.Response, pathname: str, headers: Dict[str, str]) -> Response:
    headers["Cache-Control"] = BINARY_CACHE_CONTROL
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type"),
        headers=headers,
    )


def _shape_markdown(upstream: httpx.Response, pathname: str, headers: Dict[str, str]) -> Response:
    headers["Cache-Control"] = MARKDOWN_CACHE_CONTROL
    headers["X-Content-Type-Options"] = "nosniff"
    return Response(
        content=upstream.text,
        status_code=upstream.status_code,
        media_type=MARKDOWN_CONTENT_TYPE,
        headers=headers,
    )


def _shape_structured(upstream: httpx.Response, pathname: str, headers: Dict[str, str]) -> Response:
    try:
        payload = upstream.json()
    except ValueError as exc:
        raise UpstreamFailure(reason="invalid_payload", details={"error": str(exc)}) from exc

    headers["Cache-Control"] = cache_control_for(pathname)
    return JSONResponse(content=payload, status_code=upstream.status_code, headers=headers)


_SHAPERS: Dict[ResponseKind, Callable[[httpx.Response, str, Dict[str, str]], Response]] = {
    ResponseKind.BINARY: _shape_binary,
    ResponseKind.MARKDOWN: _shape_markdown,
    ResponseKind.STRUCTURED: _shape_structured,
}


def shape_response(
    upstream: httpx.Response,
    pathname: str,
    extra_headers: Optional[Mapping[str, str]] = None,
    kind: Optional[ResponseKind] = None,
) -> Response:
    """Build the outbound response, preserving the upstream status code.

    ``extra_headers`` (rate limit metadata) are attached in every branch.
    Raises :class:`UpstreamFailure` when a structured payload cannot be parsed.
    """
    if kind is None:
        kind = classify_content_type(upstream.headers.get("content-type"))
    headers = dict(extra_headers or {})
    return _SHAPERS[kind](upstream, pathname, headers)

"""
Adapters package for the gateway.

HTTP clients for the services the gateway depends on. Adapters own base
URLs, request shapes and the mapping of transport errors onto shared
errors; they hold no per-request state between calls.
"""

from .proxygrid_client import ProxyGridClient, UpstreamRequest

__all__ = [
    "ProxyGridClient",
    "UpstreamRequest",
]

"""
Gateway caching package.

The gateway keeps no response cache of its own; it tells clients and CDNs
how long a proxied response may be reused through Cache-Control.
"""

from .cache_policy import CacheDirective, cache_control_for

__all__ = ["CacheDirective", "cache_control_for"]

"""
Cache-Control derivation for proxied responses.

Several markers can co-occur in one path (a video path may also contain
``content``), so ``CACHE_RULES`` is evaluated top to bottom and the first
matching rule wins.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class CacheDirective:
    max_age: int
    stale_while_revalidate: Optional[int] = None

    def render(self) -> str:
        directive = f"public, max-age={self.max_age}"
        if self.stale_while_revalidate is not None:
            directive += f", stale-while-revalidate={self.stale_while_revalidate}"
        return directive


@dataclass(frozen=True)
class CacheRule:
    """Matches when the path contains every marker of any one group."""

    name: str
    marker_groups: Tuple[Tuple[str, ...], ...]
    directive: CacheDirective

    def matches(self, pathname: str) -> bool:
        return any(all(marker in pathname for marker in group) for group in self.marker_groups)


MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

CACHE_RULES: Tuple[CacheRule, ...] = (
    CacheRule("video_info", (("/video/youtube/", "/info"),), CacheDirective(7 * DAY, DAY)),
    CacheRule("video", (("/video/youtube/",),), CacheDirective(30 * DAY, 5 * DAY)),
    CacheRule("search", (("/search/",),), CacheDirective(4 * HOUR, HOUR)),
    CacheRule(
        "social_profiles",
        (("/social/instagram/",), ("/social/tiktok/",)),
        CacheDirective(DAY, 4 * HOUR),
    ),
    CacheRule(
        "social_feeds",
        (("/social/reddit",), ("/social/twitter",)),
        CacheDirective(15 * MINUTE, 5 * MINUTE),
    ),
    CacheRule("markdown", (("/content/markdown",),), CacheDirective(DAY, 4 * HOUR)),
    CacheRule("screenshot", (("/content/screenshot",),), CacheDirective(HOUR, 10 * MINUTE)),
    CacheRule("similarweb", (("/content/similarweb",),), CacheDirective(7 * DAY, DAY)),
    CacheRule("hackernews", (("/content/hackernews",),), CacheDirective(15 * MINUTE, 5 * MINUTE)),
    CacheRule("commerce", (("/commerce/",),), CacheDirective(DAY, 4 * HOUR)),
)

DEFAULT_DIRECTIVE = CacheDirective(5 * MINUTE)


def resolve_cache_directive(pathname: str) -> CacheDirective:
    for rule in CACHE_RULES:
        if rule.matches(pathname):
            return rule.directive
    return DEFAULT_DIRECTIVE


def cache_control_for(pathname: str) -> str:
    """Cache-Control header value for a gateway-relative path."""
    return resolve_cache_directive(pathname).render()

"""
Per-endpoint parameter validation.

Paths are classified against an ordered table of ``(prefix, class)`` rules,
first match wins. The order of ``ENDPOINT_RULES`` is the priority order.
Paths matching no rule carry no parameter contract and are accepted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Tuple

from shared.sanitization import (
    sanitize_url,
    validate_domain,
    validate_search_query,
    validate_youtube_id,
)


class EndpointClass(str, Enum):
    SEARCH = "search"
    URL_PARAMETER = "url_parameter"
    DOMAIN_PARAMETER = "domain_parameter"
    VIDEO_ID_PARAMETER = "video_id_parameter"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class EndpointRule:
    prefix: str
    endpoint_class: EndpointClass

    def matches(self, pathname: str) -> bool:
        return pathname.startswith(self.prefix)

    @property
    def keyword(self) -> str:
        """Last segment of the prefix, e.g. ``similarweb``."""
        return self.prefix.rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    endpoint_class: EndpointClass = EndpointClass.UNCLASSIFIED


ENDPOINT_RULES: Tuple[EndpointRule, ...] = (
    EndpointRule("/search/google", EndpointClass.SEARCH),
    EndpointRule("/search/bing", EndpointClass.SEARCH),
    EndpointRule("/search/youtube", EndpointClass.SEARCH),
    EndpointRule("/content/screenshot", EndpointClass.URL_PARAMETER),
    EndpointRule("/content/markdown", EndpointClass.URL_PARAMETER),
    EndpointRule("/social/reddit", EndpointClass.URL_PARAMETER),
    EndpointRule("/content/similarweb", EndpointClass.DOMAIN_PARAMETER),
    EndpointRule("/video/youtube", EndpointClass.VIDEO_ID_PARAMETER),
)

VIDEO_INFO_SUFFIX = "info"


def classify_endpoint(pathname: str, rules: Tuple[EndpointRule, ...] = ENDPOINT_RULES) -> Optional[EndpointRule]:
    """Return the first rule whose prefix matches ``pathname``."""
    for rule in rules:
        if rule.matches(pathname):
            return rule
    return None


def _path_segments(pathname: str) -> list:
    return pathname.rstrip("/").split("/")


def _validate_search(params: Mapping[str, str]) -> ValidationResult:
    query = params.get("q")
    if not query:
        return ValidationResult(False, "Query parameter is required", EndpointClass.SEARCH)
    outcome = validate_search_query(query)
    if not outcome.valid:
        return ValidationResult(False, outcome.error, EndpointClass.SEARCH)
    return ValidationResult(True, endpoint_class=EndpointClass.SEARCH)


def _validate_url_parameter(params: Mapping[str, str]) -> ValidationResult:
    url = params.get("url")
    if not url:
        return ValidationResult(False, "URL parameter is required", EndpointClass.URL_PARAMETER)
    if sanitize_url(url) is None:
        return ValidationResult(False, "Invalid URL format", EndpointClass.URL_PARAMETER)
    return ValidationResult(True, endpoint_class=EndpointClass.URL_PARAMETER)


def _validate_domain_parameter(pathname: str, rule: EndpointRule) -> ValidationResult:
    domain = _path_segments(pathname)[-1]
    # The bare listing (no domain segment) ends with the rule keyword itself.
    if domain != rule.keyword and not validate_domain(domain):
        return ValidationResult(False, "Invalid domain format", EndpointClass.DOMAIN_PARAMETER)
    return ValidationResult(True, endpoint_class=EndpointClass.DOMAIN_PARAMETER)


def _validate_video_id(pathname: str) -> ValidationResult:
    segments = _path_segments(pathname)
    video_id = segments[-1]
    if video_id == VIDEO_INFO_SUFFIX and len(segments) > 1:
        video_id = segments[-2]
    if not validate_youtube_id(video_id):
        return ValidationResult(False, "Invalid YouTube video ID", EndpointClass.VIDEO_ID_PARAMETER)
    return ValidationResult(True, endpoint_class=EndpointClass.VIDEO_ID_PARAMETER)


def validate_request(pathname: str, params: Mapping[str, str]) -> ValidationResult:
    """Decide whether a request is well-formed before any network call.

    ``pathname`` is relative to the gateway route prefix, e.g.
    ``/video/youtube/dQw4w9WgXcQ/info``.
    """
    rule = classify_endpoint(pathname)
    if rule is None:
        return ValidationResult(True)

    if rule.endpoint_class is EndpointClass.SEARCH:
        return _validate_search(params)
    if rule.endpoint_class is EndpointClass.URL_PARAMETER:
        return _validate_url_parameter(params)
    if rule.endpoint_class is EndpointClass.DOMAIN_PARAMETER:
        return _validate_domain_parameter(pathname, rule)
    return _validate_video_id(pathname)

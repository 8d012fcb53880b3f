"""
Input sanitization and validation helpers.

Pure functions shared by every gateway component. None of them raise on
untrusted input: cleaners always return a string, validators return a
boolean or a :class:`SearchQueryValidation`.

The module is a library surface: ``__all__`` lists the helpers importable by
any gateway component, including ones the proxy pipeline does not call
itself, such as :func:`extract_youtube_id`.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlsplit

MAX_INPUT_LENGTH = 1000
MAX_URL_LENGTH = 2048
MAX_HOSTNAME_LENGTH = 253
MIN_QUERY_LENGTH = 2
MAX_QUERY_LENGTH = 500

__all__ = [
    "SearchQueryValidation",
    "sanitize_input",
    "sanitize_url",
    "validate_search_query",
    "validate_domain",
    "validate_youtube_id",
    "extract_youtube_id",
]

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_ANGLE_BRACKETS = re.compile(r"[<>]")
_SCRIPT_SCHEMES = re.compile(r"(?:javascript|vbscript):", re.IGNORECASE)
_EVENT_HANDLERS = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_BLOCKED_URL_SCHEMES = re.compile(r"^(?:javascript|data|vbscript):", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s")
_INJECTION_PATTERNS = (
    re.compile(r"<\s*/?\s*(?:script|iframe|object|embed)", re.IGNORECASE),
    _SCRIPT_SCHEMES,
    _EVENT_HANDLERS,
)

_DOMAIN_PATTERN = re.compile(
    r"(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,63}"
)
_YOUTUBE_ID_PATTERN = re.compile(r"[a-zA-Z0-9_-]{11}")
_YOUTUBE_URL_PATTERN = re.compile(
    r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/)([a-zA-Z0-9_-]{11})"
)


@dataclass(frozen=True)
class SearchQueryValidation:
    """Outcome of :func:`validate_search_query`."""

    valid: bool
    error: Optional[str] = None
    sanitized: Optional[str] = None


def sanitize_input(raw: Any) -> str:
    """Strip characters unsafe for downstream use.

    Removes control characters, angle brackets, script scheme markers and
    inline event handler assignments, then trims and truncates.
    """
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raw = str(raw)

    cleaned = _CONTROL_CHARS.sub("", raw)
    cleaned = _ANGLE_BRACKETS.sub("", cleaned)
    cleaned = _SCRIPT_SCHEMES.sub("", cleaned)
    cleaned = _EVENT_HANDLERS.sub("", cleaned)
    return cleaned.strip()[:MAX_INPUT_LENGTH]


def sanitize_url(raw: Any) -> Optional[str]:
    """Return ``raw`` (trimmed) if it is an absolute http(s) URL, else ``None``."""
    if not isinstance(raw, str):
        return None

    candidate = raw.strip()
    if not candidate or len(candidate) > MAX_URL_LENGTH:
        return None
    if _BLOCKED_URL_SCHEMES.match(candidate):
        return None
    if _CONTROL_CHARS.search(candidate) or _WHITESPACE.search(candidate):
        return None

    try:
        parts = urlsplit(candidate)
        hostname = parts.hostname
        # Accessing .port validates the port component.
        parts.port
    except ValueError:
        return None

    if parts.scheme.lower() not in ("http", "https"):
        return None
    if not hostname or len(hostname) > MAX_HOSTNAME_LENGTH:
        return None

    return candidate


def validate_search_query(raw: Any) -> SearchQueryValidation:
    """Validate a free-text search query."""
    if not isinstance(raw, str) or not raw.strip():
        return SearchQueryValidation(valid=False, error="Query cannot be empty")

    if _CONTROL_CHARS.search(raw):
        return SearchQueryValidation(valid=False, error="Query contains invalid characters")

    if any(pattern.search(raw) for pattern in _INJECTION_PATTERNS):
        return SearchQueryValidation(valid=False, error="Query contains disallowed content")

    sanitized = sanitize_input(raw)
    if not sanitized:
        return SearchQueryValidation(valid=False, error="Query cannot be empty")
    if len(sanitized) < MIN_QUERY_LENGTH:
        return SearchQueryValidation(valid=False, error="Query must be at least 2 characters")
    if len(raw.strip()) > MAX_QUERY_LENGTH:
        return SearchQueryValidation(valid=False, error="Query is too long")

    return SearchQueryValidation(valid=True, sanitized=sanitized)


def validate_domain(raw: Any) -> bool:
    """True iff ``raw`` is a syntactically valid DNS hostname with a TLD."""
    if not isinstance(raw, str) or len(raw) > MAX_HOSTNAME_LENGTH:
        return False
    return _DOMAIN_PATTERN.fullmatch(raw) is not None


def validate_youtube_id(raw: Any) -> bool:
    """True iff ``raw`` is an 11 character YouTube video id."""
    if not isinstance(raw, str):
        return False
    return _YOUTUBE_ID_PATTERN.fullmatch(raw) is not None


def extract_youtube_id(raw: Any) -> Optional[str]:
    """Extract a video id from a YouTube watch/short/embed URL or a bare id."""
    if not isinstance(raw, str):
        return None

    candidate = raw.strip()
    if validate_youtube_id(candidate):
        return candidate

    match = _YOUTUBE_URL_PATTERN.search(candidate)
    return match.group(1) if match else None

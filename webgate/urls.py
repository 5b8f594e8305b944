"""URL validation, internal-host detection and screenshot path resolution."""

from __future__ import annotations

import re
from urllib.parse import urljoin, urlparse, urlunparse

from webgate.errors import UsageError

INTERNAL_HOST_PATTERNS = [
    re.compile(r"^localhost$", re.IGNORECASE),
    re.compile(r"^127\.\d+\.\d+\.\d+$"),
    re.compile(r"^10\.\d+\.\d+\.\d+$"),
    re.compile(r"^192\.168\.\d+\.\d+$"),
    re.compile(r"^172\.(1[6-9]|2\d|3[01])\.\d+\.\d+$"),
    re.compile(r"^169\.254\.\d+\.\d+$"),
    re.compile(r"^\[?::1\]?$"),
    re.compile(r"^0\.0\.0\.0$"),
]


def is_internal_host(hostname: str) -> bool:
    return any(pattern.match(hostname) for pattern in INTERNAL_HOST_PATTERNS)


def validate_url(raw: str) -> tuple[str, bool]:
    """Return the normalized URL and whether its host looks private, loopback or link-local."""
    value = (raw or "").strip()
    try:
        parsed = urlparse(value)
        hostname = parsed.hostname
    except ValueError as exc:
        raise UsageError(f"Invalid URL: {raw}") from exc
    if parsed.scheme.lower() not in ("http", "https") or not hostname:
        raise UsageError(f"Invalid URL: {raw}")
    path = parsed.path or "/"
    normalized = urlunparse((parsed.scheme.lower(), parsed.netloc, path, parsed.params, parsed.query, parsed.fragment))
    return normalized, is_internal_host(hostname)


def validate_screenshot_path(shot_path: str) -> None:
    # Screenshot paths are resolved against the target, never navigated to as-is.
    if "://" in shot_path:
        raise ValueError(f"Screenshot path must be a relative path, not a URL: {shot_path}")
    if not shot_path.startswith("/"):
        raise ValueError(f"Screenshot path must start with /: {shot_path}")


def resolve_screenshot_url(base_url: str, shot_path: str) -> str:
    validate_screenshot_path(shot_path)
    return urljoin(base_url, shot_path)

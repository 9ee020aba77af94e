"""URL validation and resolution for scraped links."""

import re
from typing import Optional, Set
from urllib.parse import urljoin, urlparse

from partscrape.config import ALLOWED_DOMAINS

__all__ = [
    "URLValidationError",
    "sanitize_url",
    "validate_url",
    "resolve_url",
    "resolve_image_url",
]


class URLValidationError(Exception):
    """Raised when URL validation fails."""
    pass


# Dangerous URL schemes to reject
DANGEROUS_SCHEMES = {"javascript", "data", "vbscript", "file"}

SUSPICIOUS_PATTERNS = [
    r"\.\.\/",           # Path traversal
    r"%2e%2e",           # Encoded path traversal
    r"<script",          # XSS attempt
    r"javascript:",      # JS injection
]


def sanitize_url(url: Optional[str]) -> str:
    """Strip whitespace and control characters from a URL."""
    if not url:
        return ""

    url = url.strip()
    url = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", url)
    return url.replace("%00", "")


def validate_url(
    url: str,
    allowed_domains: Optional[Set[str]] = None,
    require_https: bool = False,
) -> str:
    """Validate an absolute URL for safety.

    Args:
        url: URL to validate
        allowed_domains: Hosts to accept; None means ALLOWED_DOMAINS, an empty
            set accepts any host
        require_https: Whether to require the HTTPS scheme

    Returns:
        The sanitized URL

    Raises:
        URLValidationError: If the URL is invalid or from an untrusted host
    """
    if not url:
        raise URLValidationError("URL is empty")

    url = sanitize_url(url)

    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise URLValidationError(f"Failed to parse URL: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise URLValidationError(f"Dangerous URL scheme: {scheme}")

    if require_https and scheme != "https":
        raise URLValidationError(f"URL must use HTTPS, got: {scheme}")

    if scheme not in ("http", "https"):
        raise URLValidationError(f"Invalid URL scheme: {scheme or '(none)'}")

    domain = parsed.netloc.lower().split(":")[0]
    if not domain:
        raise URLValidationError("URL has no domain")

    domains_to_check = allowed_domains if allowed_domains is not None else ALLOWED_DOMAINS
    if domains_to_check and domain not in domains_to_check:
        raise URLValidationError(
            f"URL domain '{domain}' not in allowed domains: {sorted(domains_to_check)}"
        )

    url_lower = url.lower()
    for pattern in SUSPICIOUS_PATTERNS:
        if re.search(pattern, url_lower):
            raise URLValidationError(f"URL contains suspicious pattern: {pattern}")

    return url


def resolve_url(
    href: Optional[str],
    base_url: str,
    allowed_domains: Optional[Set[str]] = None,
) -> Optional[str]:
    """Resolve a link against the page it was found on.

    Returns:
        The absolute, validated URL, or None when the link is missing or not
        a crawlable http(s) URL.
    """
    href = sanitize_url(href)
    if not href or href.startswith("#"):
        return None

    try:
        return validate_url(urljoin(base_url, href), allowed_domains=allowed_domains)
    except URLValidationError:
        return None


def resolve_image_url(src: Optional[str], base_url: str) -> Optional[str]:
    """Resolve an image source; images may live on any CDN host."""
    return resolve_url(src, base_url, allowed_domains=set())

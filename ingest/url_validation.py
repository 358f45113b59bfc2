"""URL validation and sanitization utilities.

Feed URLs come from the environment and image/offer URLs come from supplier
data, so both pass through here before they are fetched or stored.
"""

import re
from typing import Optional
from urllib.parse import urljoin, urlparse

from ingest.errors import ConfigurationError

__all__ = [
    "sanitize_url",
    "validate_feed_url",
    "clean_link",
    "ALLOWED_SCHEMES",
]

ALLOWED_SCHEMES = frozenset({"http", "https"})

# Dangerous URL schemes to reject
DANGEROUS_SCHEMES = frozenset({"javascript", "data", "vbscript", "file"})


def sanitize_url(url: Optional[str]) -> str:
    """Strip whitespace and control characters from a URL."""
    if not url:
        return ""
    url = str(url).strip()
    url = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", url)
    return url.replace("%00", "")


def validate_feed_url(url: str) -> str:
    """Validate a configured feed URL.

    Raises:
        ConfigurationError: If the URL is not absolute http(s).
    """
    url = sanitize_url(url)
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.netloc:
        raise ConfigurationError(f"Invalid feed URL: {url!r}")
    return url


def clean_link(url: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """Normalize a link taken from feed data.

    Protocol-relative links get https, site-relative links are resolved
    against ``base_url`` when given. Returns None for empty links and
    dangerous schemes.
    """
    url = sanitize_url(url)
    if not url:
        return None
    if url.startswith("//"):
        url = "https:" + url

    scheme = urlparse(url).scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        return None
    if not scheme and base_url:
        url = urljoin(base_url, url)
    return url

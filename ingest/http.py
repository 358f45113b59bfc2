"""Timeout-bounded feed retrieval.

No retries: a failed fetch fails the run, and the next scheduled run is the
retry.
"""

from typing import Optional

import requests  # type: ignore[import-untyped]

from ingest.config import HEADERS, REQUEST_TIMEOUT
from ingest.errors import TransportError
from ingest.logging_config import get_logger
from ingest.url_validation import validate_feed_url

__all__ = [
    "create_session",
    "fetch_feed",
]

logger = get_logger("http")

# Module-level session for connection reuse
_session: Optional[requests.Session] = None


def create_session() -> requests.Session:
    """Create a requests Session with the importer's headers."""
    session = requests.Session()
    session.headers.update(HEADERS)
    session.headers.setdefault("Accept-Encoding", "gzip, deflate")
    return session


def _get_session() -> requests.Session:
    global _session
    if _session is None:
        _session = create_session()
    return _session


def fetch_feed(
    url: str,
    timeout: float = REQUEST_TIMEOUT,
    session: Optional[requests.Session] = None,
) -> bytes:
    """GET a feed and return the raw body.

    The body is returned as bytes so the XML parser can honour the
    document's own encoding declaration (YML feeds are often windows-1251).

    Raises:
        ConfigurationError: If the URL is not absolute http(s)
        TransportError: On timeout, connection failure or non-success status
    """
    url = validate_feed_url(url)
    sess = session or _get_session()

    try:
        resp = sess.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.exceptions.Timeout as e:
        logger.error(f"Timeout after {timeout}s fetching {url}")
        raise TransportError(f"Timeout after {timeout}s fetching {url}", url=url) from e
    except requests.exceptions.HTTPError as e:
        status_code = e.response.status_code if e.response is not None else None
        logger.error(f"HTTP {status_code} fetching {url}")
        raise TransportError(f"HTTP {status_code} for {url}", url=url, status_code=status_code) from e
    except requests.exceptions.RequestException as e:
        logger.error(f"Request error fetching {url}: {e}")
        raise TransportError(f"Failed to fetch {url}: {e}", url=url) from e

    logger.debug(f"Fetched {len(resp.content)} bytes from {url}")
    return resp.content

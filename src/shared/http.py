"""HTTP helpers for bootstrap dataset downloads.

This module provides a retrying GET with backoff for the public datasets
the downloader consumes.
"""

import logging
import time
from typing import Dict, Optional
from urllib.parse import urlparse

import requests

from src.shared.constants import HTTP

__all__ = [
    'DEFAULT_USER_AGENT',
    'create_session',
    'get_headers',
    'get_with_retry',
]


DEFAULT_USER_AGENT = "geo-navigator/1.0"


def _sanitize_url(url: str) -> str:
    """Drop query parameters from a URL for logging.

    Args:
        url: URL to sanitize

    Returns:
        URL with query parameters replaced by [REDACTED]
    """
    try:
        parsed = urlparse(url)
        safe_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
        if parsed.query:
            safe_url += "?[REDACTED]"
        return safe_url
    except ValueError:
        return "[INVALID_URL]"


def get_headers(user_agent: Optional[str] = None) -> Dict[str, str]:
    """Get request headers for dataset downloads.

    Args:
        user_agent: User agent string (default: DEFAULT_USER_AGENT)

    Returns:
        Dictionary of HTTP headers
    """
    return {
        "User-Agent": user_agent or DEFAULT_USER_AGENT,
        "Accept": "application/json, application/zip, */*;q=0.8",
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
    }


def create_session() -> requests.Session:
    """Create a requests session with download headers applied."""
    session = requests.Session()
    session.headers.update(get_headers())
    return session


def get_with_retry(
    session: requests.Session,
    url: str,
    max_retries: Optional[int] = None,
    timeout: Optional[int] = None,
    rate_limit_base_wait: Optional[int] = None,
) -> Optional[requests.Response]:
    """Fetch URL with exponential backoff on transient failures.

    429 responses back off exponentially from ``rate_limit_base_wait``;
    5xx, 408 and connection errors wait ``HTTP.SERVER_ERROR_WAIT``. Other
    4xx responses fail immediately since they won't succeed on retry.

    Args:
        session: requests.Session to use
        url: URL to fetch
        max_retries: Maximum number of attempts
        timeout: Request timeout in seconds
        rate_limit_base_wait: Base wait time for 429 errors

    Returns:
        Response object on success, None on failure
    """
    max_retries = max_retries if max_retries is not None else HTTP.MAX_RETRIES
    timeout = timeout if timeout is not None else HTTP.TIMEOUT
    rate_limit_base_wait = rate_limit_base_wait if rate_limit_base_wait is not None else HTTP.RATE_LIMIT_BASE_WAIT

    safe_url = _sanitize_url(url)
    response = None

    for attempt in range(max_retries):
        try:
            response = session.get(url, timeout=timeout)
        except requests.exceptions.RequestException as e:
            response = None
            wait_time = HTTP.SERVER_ERROR_WAIT
            logging.warning(
                f"Request error for {safe_url}: {e}. "
                f"Waiting {wait_time}s (attempt {attempt + 1}/{max_retries})..."
            )
            time.sleep(wait_time)
            continue

        if response.status_code == 200:
            logging.debug(f"Successfully fetched {safe_url}")
            return response

        if response.status_code == 429:
            wait_time = (2 ** attempt) * rate_limit_base_wait
            logging.warning(
                f"Rate limited (429) for {safe_url}. "
                f"Waiting {wait_time}s (attempt {attempt + 1}/{max_retries})..."
            )
            time.sleep(wait_time)

        elif response.status_code >= 500 or response.status_code == 408:
            wait_time = HTTP.SERVER_ERROR_WAIT
            logging.warning(
                f"Server error ({response.status_code}) for {safe_url}. "
                f"Waiting {wait_time}s (attempt {attempt + 1}/{max_retries})..."
            )
            time.sleep(wait_time)

        else:
            logging.error(f"HTTP {response.status_code} for {safe_url}. Failing immediately.")
            return None

    final_status = response.status_code if response is not None else 'no response'
    logging.error(
        f"Failed to fetch {safe_url} after {max_retries} attempts (last status: {final_status})"
    )
    return None

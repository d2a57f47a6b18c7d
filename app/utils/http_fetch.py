"""
HTTP fetch utilities

Downloads upstream sources into memory with retry logic.
"""
import logging
import asyncio

import httpx

from app.errors import UpstreamFetchFailed
from app.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)


async def fetch_url(
    url: str,
    timeout: float = 120.0,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    user_agent: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.Response:
    """
    Fetch a URL with exponential backoff retry logic

    Retries on transient network errors (timeouts, connection errors) and
    5xx responses. Does NOT retry on 4xx HTTP errors (client errors), redirect
    loops or bodies that fail to decode.

    Args:
        url: URL to fetch
        timeout: HTTP timeout in seconds
        max_retries: Maximum number of attempts
        backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)
        user_agent: Optional User-Agent header (some providers reject httpx's default)
        transport: Optional httpx transport, used by tests

    Returns:
        The successful response with its body loaded

    Raises:
        UpstreamFetchFailed: If the fetch fails after all retries or on a 4xx
    """
    safe_url = sanitize_url_for_logging(url)
    logger.info(f"Fetching {safe_url}...")

    headers = {"User-Agent": user_agent} if user_agent else None
    last_error: UpstreamFetchFailed | None = None
    attempts = max(1, max_retries)

    for attempt in range(attempts):
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                headers=headers,
                follow_redirects=True,
                transport=transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()

                size_mb = len(response.content) / (1024 * 1024)
                logger.info(f"Fetched {size_mb:.2f} MB from {safe_url}")

                return response

        except httpx.TransportError as e:
            # Timeouts, connection errors and other transient network errors - retry
            last_error = UpstreamFetchFailed(url, f"{type(e).__name__} fetching {safe_url}")
            if attempt < attempts - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Fetch attempt {attempt + 1}/{attempts} failed (transient error): {type(e).__name__}. "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Fetch failed after {attempts} attempts (transient error)")

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            # HTTP errors - don't retry on 4xx (client error), retry on 5xx (server error)
            if 400 <= status < 500:
                logger.error(f"HTTP {status} (client error) from {safe_url}")
                raise UpstreamFetchFailed(url, f"HTTP {status} from {safe_url}", status) from e

            last_error = UpstreamFetchFailed(url, f"HTTP {status} from {safe_url}", status)
            if attempt < attempts - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Fetch attempt {attempt + 1}/{attempts} failed "
                    f"(HTTP {status} server error). "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Fetch failed after {attempts} attempts (HTTP {status})")

        except httpx.RequestError as e:
            # Redirect loops and undecodable bodies are not transient
            logger.error(f"{type(e).__name__} fetching {safe_url}: {e}")
            raise UpstreamFetchFailed(url, f"{type(e).__name__} fetching {safe_url}") from e

    raise last_error

"""Shared outbound HTTP plumbing for the music service clients.

Transport failures (timeouts, refused connections) are retried with
exponential backoff; HTTP status handling is left to the caller.
"""
from __future__ import annotations

import logging

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from trapt.config import settings

logger = logging.getLogger(__name__)


def create_http_client() -> httpx.AsyncClient:
    """Build the process-wide client used for third-party APIs."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http.timeout),
        headers={"User-Agent": f"{settings.app_name}/{settings.version}"},
    )


@retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(settings.http.max_attempts),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    reraise=True,
)
async def send_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    """Send a request, retrying only on transport-level errors."""
    logger.debug(f"{method} {url}")
    return await client.request(method, url, **kwargs)


def safe_json(response: httpx.Response) -> dict:
    """Decode a JSON body, returning ``{}`` for empty or non-JSON bodies."""
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"data": data}

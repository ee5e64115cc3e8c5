"""
Shared HTTP client for supplier APIs and feeds.
Every call carries a timeout; GETs retry on 5xx and connection errors, POSTs never retry.
"""
import asyncio
import logging
from typing import Any, Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 2
RETRY_BACKOFF_BASE = 1.0  # seconds
RETRY_STATUSES = (502, 503, 504)


async def _sleep_backoff(attempt: int) -> None:
    if attempt <= 0:
        return
    await asyncio.sleep(min(RETRY_BACKOFF_BASE * (2 ** (attempt - 1)), 10.0))


async def get_with_retry(
    url: str,
    *,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: Optional[float] = None,
    max_retries: int = DEFAULT_RETRIES,
) -> httpx.Response:
    """GET with bounded retries. Raises the last connection error once retries are exhausted."""
    timeout = timeout or settings.SUPPLIER_HTTP_TIMEOUT
    resp: Optional[httpx.Response] = None
    for attempt in range(max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                resp = await client.get(url, params=params, headers=headers)
            if attempt < max_retries and resp.status_code in RETRY_STATUSES:
                logger.warning("GET %s returned %s (attempt %s)", url, resp.status_code, attempt + 1)
                await _sleep_backoff(attempt + 1)
                continue
            return resp
        except (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout) as e:
            if attempt >= max_retries:
                raise
            logger.warning("GET %s attempt %s failed: %s", url, attempt + 1, e)
            await _sleep_backoff(attempt + 1)
    return resp  # type: ignore


async def post_no_retry(
    url: str,
    *,
    json: Optional[Any] = None,
    headers: Optional[dict] = None,
    timeout: Optional[float] = None,
) -> httpx.Response:
    """Single-attempt POST (order submission is not idempotent on the supplier side)."""
    async with httpx.AsyncClient(timeout=timeout or settings.SUPPLIER_HTTP_TIMEOUT) as client:
        return await client.post(url, json=json, headers=headers or {})

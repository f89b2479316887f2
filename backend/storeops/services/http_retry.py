from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional

import httpx

from storeops.utils.logger import integration_log, logger

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


async def get_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    provider: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    max_retries: int = 3,
    base_delay: float = 1.0,
) -> httpx.Response:
    """GET with exponential backoff on network errors and 429/5xx responses.

    Client errors (4xx other than 429) are returned immediately. After the
    last retry the final response is returned, or the last network error is
    raised.
    """
    attempt = 0
    while True:
        started = time.monotonic()
        try:
            resp = await client.get(url, params=params, headers=headers)
        except httpx.RequestError as exc:
            integration_log.record(provider, "GET", url, None, started, params, error=str(exc))
            if attempt >= max_retries:
                raise
        else:
            error = resp.text[:300] if resp.status_code >= 400 else None
            integration_log.record(provider, "GET", url, resp.status_code, started, params, error=error)
            if resp.status_code not in RETRYABLE_STATUS or attempt >= max_retries:
                return resp

        delay = base_delay * (2 ** attempt)
        attempt += 1
        logger.warning(f"{provider} GET {url} failed, retry {attempt}/{max_retries} in {delay:.2f}s")
        await asyncio.sleep(delay)

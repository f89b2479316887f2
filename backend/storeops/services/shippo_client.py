from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from fastapi import HTTPException, status

from storeops.config import settings
from storeops.services.http_retry import get_with_retry
from storeops.utils.logger import logger


class ShippoError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body


class ShippoClient:
    """Read-only wrapper around the Shippo REST API."""

    provider = "shippo"

    def __init__(
        self,
        api_token: str,
        base_url: str = "https://api.goshippo.com",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"ShippoToken {self.api_token}",
            "Content-Type": "application/json",
        }

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not url.startswith("http"):
            url = f"{self.base_url}{url}"
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(20.0, connect=5.0), transport=self._transport) as client:
                resp = await get_with_retry(
                    client,
                    url,
                    provider=self.provider,
                    params=params,
                    headers=self._headers(),
                    max_retries=self.max_retries,
                    base_delay=self.retry_base_delay,
                )
        except httpx.RequestError as exc:
            logger.error(f"Shippo request error for {url}: {exc}")
            raise ShippoError(f"Shippo request failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = resp.text

        if resp.status_code >= 400:
            raise ShippoError(f"Shippo API error: {resp.status_code} {resp.reason_phrase}", resp.status_code, data)
        if not isinstance(data, dict):
            raise ShippoError("Shippo API returned a non-JSON body", resp.status_code, data)
        return data

    async def list_orders(
        self,
        page: int = 1,
        results: int = 100,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "results": results}
        if start_date:
            params["start_date"] = start_date
        if end_date:
            params["end_date"] = end_date
        return await self._get("/orders/", params)

    async def list_orders_next(self, next_url: str) -> Dict[str, Any]:
        return await self._get(next_url)

    async def get_order(self, order_id: str) -> Dict[str, Any]:
        return await self._get(f"/orders/{order_id}")

    async def get_transaction(self, transaction_id: str) -> Dict[str, Any]:
        return await self._get(f"/transactions/{transaction_id}")

    async def get_rate(self, rate_id: str) -> Dict[str, Any]:
        return await self._get(f"/rates/{rate_id}")

    async def list_invoices(self, status: Optional[str] = "PAID", page: int = 1, results: int = 50) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "results": results}
        if status:
            params["status"] = status
        return await self._get("/invoices", params)

    async def list_invoices_next(self, next_url: str) -> Dict[str, Any]:
        return await self._get(next_url)


def get_shippo_client() -> ShippoClient:
    if not settings.SHIPPO_API_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="SHIPPO_API_TOKEN is not configured",
        )
    return ShippoClient(
        settings.SHIPPO_API_TOKEN,
        base_url=settings.SHIPPO_API_BASE_URL,
        max_retries=settings.HTTP_MAX_RETRIES,
        retry_base_delay=settings.HTTP_RETRY_BASE_DELAY,
    )

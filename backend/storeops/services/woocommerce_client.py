from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from fastapi import HTTPException, status

from storeops.config import settings
from storeops.services.http_retry import get_with_retry
from storeops.utils.logger import logger


class WooCommerceError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body


class WooCommerceClient:
    """Minimal WooCommerce REST (wc/v3) reader authenticated with query-string keys."""

    provider = "woocommerce"

    def __init__(
        self,
        store_url: str,
        consumer_key: str,
        consumer_secret: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ):
        self.base_url = f"{store_url.rstrip('/')}/wp-json/wc/v3"
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self._transport = transport
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        query = {"consumer_key": self.consumer_key, "consumer_secret": self.consumer_secret}
        query.update(params or {})
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=5.0), transport=self._transport) as client:
                resp = await get_with_retry(
                    client,
                    url,
                    provider=self.provider,
                    params=query,
                    max_retries=self.max_retries,
                    base_delay=self.retry_base_delay,
                )
        except httpx.RequestError as exc:
            logger.error(f"WooCommerce request error for {path}: {exc}")
            raise WooCommerceError(f"WooCommerce request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise WooCommerceError(f"WooCommerce API error: {resp.status_code} {resp.reason_phrase}", resp.status_code, resp.text[:500])
        try:
            return resp.json()
        except ValueError as exc:
            raise WooCommerceError("WooCommerce API returned invalid JSON", resp.status_code, resp.text[:500]) from exc

    async def get_order(self, order_id: int) -> Dict[str, Any]:
        return await self._get(f"/orders/{order_id}")

    async def get_product(self, product_id: int) -> Dict[str, Any]:
        return await self._get(f"/products/{product_id}")

    async def list_orders(self, page: int = 1, per_page: int = 100, **filters: Any) -> List[Dict[str, Any]]:
        params = {"page": page, "per_page": per_page, "orderby": "date", "order": "desc"}
        params.update(filters)
        return await self._get("/orders", params)

    async def list_products(self, page: int = 1, per_page: int = 100) -> List[Dict[str, Any]]:
        return await self._get("/products", {"page": page, "per_page": per_page, "orderby": "modified"})

    async def iter_products(self, per_page: int = 100, max_pages: int = 50) -> AsyncIterator[Dict[str, Any]]:
        for page in range(1, max_pages + 1):
            batch = await self.list_products(page=page, per_page=per_page)
            for product in batch:
                yield product
            if len(batch) < per_page:
                return

    async def iter_orders(self, per_page: int = 100, max_pages: int = 50, **filters: Any) -> AsyncIterator[Dict[str, Any]]:
        for page in range(1, max_pages + 1):
            batch = await self.list_orders(page=page, per_page=per_page, **filters)
            for order in batch:
                yield order
            if len(batch) < per_page:
                return


def get_woocommerce_client() -> WooCommerceClient:
    if not (settings.WOOCOMMERCE_STORE_URL and settings.WOOCOMMERCE_CONSUMER_KEY and settings.WOOCOMMERCE_CONSUMER_SECRET):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="WooCommerce credentials are not configured",
        )
    return WooCommerceClient(
        settings.WOOCOMMERCE_STORE_URL,
        settings.WOOCOMMERCE_CONSUMER_KEY,
        settings.WOOCOMMERCE_CONSUMER_SECRET,
        max_retries=settings.HTTP_MAX_RETRIES,
        retry_base_delay=settings.HTTP_RETRY_BASE_DELAY,
    )

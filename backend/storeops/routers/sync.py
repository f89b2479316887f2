from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from storeops.database import get_db
from storeops.services.order_reconciliation import InvalidOrderPayload
from storeops.services.order_sync import DEFAULT_CHUNK, MAX_CHUNK, sync_all_orders_line_items, sync_single_order
from storeops.services.product_sync import refresh_product_stock, sync_products
from storeops.services.upsert import PersistenceError
from storeops.services.webhook_auth import require_api_key
from storeops.services.woocommerce_client import WooCommerceClient, WooCommerceError, get_woocommerce_client

router = APIRouter(prefix="/sync", tags=["sync"], dependencies=[Depends(require_api_key)])


def _upstream_error(exc: WooCommerceError) -> HTTPException:
    if exc.status_code == 404:
        return HTTPException(status_code=404, detail="Not found in WooCommerce")
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"error": exc.message, "upstream_status": exc.status_code},
    )


@router.post("/all-orders-line-items")
async def sync_all_line_items(
    offset: int = Query(0, ge=0),
    limit: int = Query(DEFAULT_CHUNK, ge=1, le=MAX_CHUNK),
    db: Session = Depends(get_db),
    client: WooCommerceClient = Depends(get_woocommerce_client),
):
    """One bounded chunk of the full re-sync; call again with next_offset."""
    return await sync_all_orders_line_items(db, client, offset=offset, limit=limit)


@router.post("/orders/{woo_order_id}")
async def sync_order(
    woo_order_id: int,
    db: Session = Depends(get_db),
    client: WooCommerceClient = Depends(get_woocommerce_client),
):
    try:
        result = await sync_single_order(db, client, woo_order_id)
    except WooCommerceError as exc:
        raise _upstream_error(exc)
    except InvalidOrderPayload as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail={"error": "Failed to save order", "details": exc.message})
    return {
        "order_number": result.order_number,
        "line_items_synced": result.line_items,
        "total": result.total,
        "cost": result.cost,
        "profit": result.profit,
    }


@router.post("/products")
async def sync_platform_products(
    db: Session = Depends(get_db),
    client: WooCommerceClient = Depends(get_woocommerce_client),
):
    try:
        return await sync_products(db, client)
    except WooCommerceError as exc:
        raise _upstream_error(exc)


@router.post("/product-stock")
async def sync_product_stock(
    db: Session = Depends(get_db),
    client: WooCommerceClient = Depends(get_woocommerce_client),
):
    return await refresh_product_stock(db, client)

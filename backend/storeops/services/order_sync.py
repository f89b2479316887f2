from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storeops.models_sqlalchemy.models import Order
from storeops.services.order_reconciliation import InvalidOrderPayload, ReconciliationResult, reconcile_order
from storeops.services.upsert import PersistenceError
from storeops.services.woocommerce_client import WooCommerceClient, WooCommerceError
from storeops.utils.logger import logger

MAX_CHUNK = 25
DEFAULT_CHUNK = 10


async def sync_single_order(db: Session, client: WooCommerceClient, woo_order_id: int) -> ReconciliationResult:
    payload = await client.get_order(woo_order_id)
    return reconcile_order(db, payload, origin="rest")


async def sync_all_orders_line_items(db: Session, client: WooCommerceClient, offset: int = 0, limit: int = DEFAULT_CHUNK) -> Dict[str, Any]:
    """Re-fetch one window of known orders from the platform and reconcile them.

    The caller continues with ``next_offset`` while ``has_more`` is true.
    """
    limit = max(1, min(limit, MAX_CHUNK))
    offset = max(0, offset)

    base = db.query(Order).filter(Order.woo_order_id.isnot(None))
    total = base.count()
    window = [
        (order.order_number, order.woo_order_id)
        for order in base.order_by(Order.id.asc()).offset(offset).limit(limit).all()
    ]

    synced = 0
    errors: List[Dict[str, Any]] = []
    for order_number, woo_order_id in window:
        try:
            await sync_single_order(db, client, woo_order_id)
            synced += 1
        except (WooCommerceError, InvalidOrderPayload, PersistenceError, SQLAlchemyError) as exc:
            db.rollback()
            logger.warning(f"Line item sync for {order_number} failed: {exc}")
            errors.append({"order_number": order_number, "woo_order_id": woo_order_id, "error": str(exc)})

    next_offset = offset + len(window)
    return {
        "synced": synced,
        "errors": errors,
        "total": total,
        "has_more": next_offset < total,
        "next_offset": next_offset,
    }

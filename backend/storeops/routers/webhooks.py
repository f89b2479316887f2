from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storeops.database import get_db
from storeops.services.order_reconciliation import InvalidOrderPayload, reconcile_order
from storeops.services.shippo_sync import LABEL_TRANSACTION_SOURCE, apply_shipping_cost, find_order_for_shipping, record_invoice_email
from storeops.services.upsert import PersistenceError
from storeops.services.webhook_auth import require_api_key
from storeops.utils.logger import logger
from storeops.utils.money import round_money, to_float

router = APIRouter(prefix="/webhooks", tags=["webhooks"], dependencies=[Depends(require_api_key)])


@router.post("/order")
async def order_webhook(payload: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    """Ingest one order pushed by WooCommerce or an automation."""
    try:
        result = reconcile_order(db, payload, origin="webhook")
    except InvalidOrderPayload as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except PersistenceError as exc:
        logger.error(f"Order webhook persistence failure: {exc.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to save order", "details": exc.message},
        )

    return {
        "status": "success",
        "order_number": result.order_number,
        "woo_order_id": result.woo_order_id,
        "total": result.total,
        "cost": result.cost,
        "profit": result.profit,
        "margin": result.margin_display,
        "line_items": result.line_items,
    }


class ShippingCostWebhook(BaseModel):
    order_number: Optional[str] = None
    woo_order_id: Optional[int] = None
    shipping_cost: Any = None
    transaction_object_id: Optional[str] = None


@router.post("/order-shipping-cost")
async def order_shipping_cost_webhook(body: ShippingCostWebhook, db: Session = Depends(get_db)):
    """Label purchased in Shippo: overwrite the order's actual shipping cost."""
    if not body.order_number and not body.woo_order_id:
        raise HTTPException(status_code=400, detail="order_number or woo_order_id is required")
    cost = to_float(body.shipping_cost, None)
    if cost is None or cost <= 0:
        raise HTTPException(status_code=400, detail="shipping_cost must be a positive number")

    order = find_order_for_shipping(db, body.woo_order_id, body.order_number)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    expense_action = apply_shipping_cost(db, order, cost, LABEL_TRANSACTION_SOURCE, body.transaction_object_id)
    db.commit()
    logger.info(f"Shipping cost {cost} applied to {order.order_number} (expense {expense_action})")
    return {
        "status": "success",
        "order_number": order.order_number,
        "shipping_cost": round_money(cost),
        "expense": expense_action,
    }


class ShippoInvoiceEmail(BaseModel):
    invoice_number: str
    amount: Any
    date: Optional[str] = None
    description: Optional[str] = None


@router.post("/shippo-expense")
async def shippo_expense_webhook(body: ShippoInvoiceEmail, db: Session = Depends(get_db)):
    """Invoice forwarded from a Shippo billing email."""
    amount = to_float(body.amount, None)
    if amount is None or amount <= 0:
        raise HTTPException(status_code=400, detail="amount must be a positive number")
    if not body.invoice_number.strip():
        raise HTTPException(status_code=400, detail="invoice_number is required")

    outcome, expense = record_invoice_email(db, body.invoice_number.strip(), amount, body.date, body.description)
    return {"status": outcome, "expense_id": expense.expense_id}

from __future__ import annotations

from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from storeops.config import settings
from storeops.models_sqlalchemy.models import EXCLUDED_ORDER_STATUSES, Order, OrderLine, Product, StockStatus

_UNSET = object()


def compute_current_stock(starting_qty: Optional[int], qty_sold: Optional[int]) -> int:
    """Remaining stock, floored at zero."""
    return max(0, (starting_qty or 0) - (qty_sold or 0))


def stock_status_for_quantity(current_stock: int, low_threshold: int) -> str:
    if current_stock <= 0:
        return StockStatus.out_of_stock.value
    if current_stock < low_threshold:
        return StockStatus.low_stock.value
    return StockStatus.in_stock.value


def stock_status_from_platform(platform_status: Optional[str]) -> str:
    status = (platform_status or "").strip().lower()
    if status == "instock":
        return StockStatus.in_stock.value
    if status == "onbackorder":
        return StockStatus.low_stock.value
    return StockStatus.out_of_stock.value


def validate_stock_status(value: str) -> str:
    allowed = {s.value for s in StockStatus}
    if value not in allowed:
        raise ValueError(f"stock status must be one of {sorted(allowed)}")
    return value


def _sales_by_product(db: Session) -> Dict[int, Dict[str, float]]:
    rows = (
        db.query(
            OrderLine.woo_product_id,
            func.sum(OrderLine.qty_ordered),
            func.max(OrderLine.customer_paid_per_unit),
        )
        .join(Order, Order.order_number == OrderLine.order_number)
        .filter(OrderLine.woo_product_id.isnot(None))
        .filter(Order.status.notin_(EXCLUDED_ORDER_STATUSES))
        .group_by(OrderLine.woo_product_id)
        .all()
    )
    return {pid: {"qty": int(qty or 0), "max_price": float(price or 0)} for pid, qty, price in rows}


def refresh_stock_levels(product: Product) -> None:
    """Re-derive current_stock, and stock_status when starting stock is tracked."""
    product.current_stock = compute_current_stock(product.starting_qty, product.qty_sold)
    if product.starting_qty:
        product.stock_status = stock_status_for_quantity(product.current_stock, settings.LOW_STOCK_THRESHOLD)


def recalculate_products_from_orders(db: Session) -> dict:
    """Recompute qty_sold/current_stock for every product from order lines."""
    sales = _sales_by_product(db)
    products = db.query(Product).all()
    prices_filled = 0
    for product in products:
        stats = sales.get(product.woo_product_id, {"qty": 0, "max_price": 0.0})
        product.qty_sold = stats["qty"]
        refresh_stock_levels(product)
        if product.retail_price is None and stats["max_price"] > 0:
            product.retail_price = stats["max_price"]
            prices_filled += 1
    db.commit()
    return {"products_updated": len(products), "retail_prices_filled": prices_filled}


def update_product_stock(db: Session, product: Product, stock_status_override=_UNSET, starting_qty: Optional[int] = None) -> Product:
    if stock_status_override is not _UNSET:
        product.stock_status_override = validate_stock_status(stock_status_override) if stock_status_override else None
    if starting_qty is not None:
        if starting_qty < 0:
            raise ValueError("starting_qty must not be negative")
        product.starting_qty = starting_qty
    refresh_stock_levels(product)
    db.commit()
    return product

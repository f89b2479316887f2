from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storeops.models_sqlalchemy.models import Product
from storeops.services.product_stock import stock_status_from_platform
from storeops.services.woocommerce_client import WooCommerceClient, WooCommerceError
from storeops.utils.logger import logger
from storeops.utils.money import to_float, to_int


def _price(value: Any) -> Optional[float]:
    price = to_float(value, None)
    return price if price is not None and price > 0 else None


def apply_platform_product(db: Session, data: Dict[str, Any]) -> str:
    woo_id = to_int(data.get("id"))
    if not woo_id:
        raise ValueError("product payload has no id")

    product = db.query(Product).filter(Product.woo_product_id == woo_id).first()
    action = "updated"
    if product is None:
        product = Product(woo_product_id=woo_id, name=data.get("name") or f"Product {woo_id}")
        db.add(product)
        action = "created"

    product.name = data.get("name") or product.name
    product.sku = data.get("sku") or product.sku
    product.retail_price = _price(data.get("regular_price")) or _price(data.get("price")) or product.retail_price
    product.sale_price = _price(data.get("sale_price"))
    product.stock_status = stock_status_from_platform(data.get("stock_status"))
    return action


async def sync_products(db: Session, client: WooCommerceClient, per_page: int = 100, max_pages: int = 50) -> Dict[str, Any]:
    created = updated = 0
    errors: List[Dict[str, Any]] = []
    async for data in client.iter_products(per_page=per_page, max_pages=max_pages):
        try:
            action = apply_platform_product(db, data)
            db.commit()
        except (ValueError, SQLAlchemyError) as exc:
            db.rollback()
            errors.append({"woo_product_id": data.get("id"), "error": str(exc)})
            continue
        created += int(action == "created")
        updated += int(action == "updated")

    logger.info(f"Product sync: created={created} updated={updated} errors={len(errors)}")
    return {"created": created, "updated": updated, "errors": errors}


async def refresh_product_stock(db: Session, client: WooCommerceClient) -> Dict[str, Any]:
    """Re-read each linked product's stock status from the platform."""
    products = db.query(Product).filter(Product.woo_product_id.isnot(None)).order_by(Product.product_id.asc()).all()
    refreshed = 0
    errors: List[Dict[str, Any]] = []
    for product in products:
        woo_id = product.woo_product_id
        try:
            data = await client.get_product(woo_id)
            product.stock_status = stock_status_from_platform(data.get("stock_status"))
            db.commit()
            refreshed += 1
        except (WooCommerceError, SQLAlchemyError) as exc:
            db.rollback()
            errors.append({"woo_product_id": woo_id, "error": str(exc)})
    return {"refreshed": refreshed, "errors": errors}

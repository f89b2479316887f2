from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storeops.database import get_db
from storeops.models_sqlalchemy.models import Product
from storeops.services.product_stock import recalculate_products_from_orders, update_product_stock

router = APIRouter(prefix="/products", tags=["products"])


def _product_dict(p: Product) -> dict:
    return {
        "product_id": p.product_id,
        "woo_product_id": p.woo_product_id,
        "name": p.name,
        "sku": p.sku,
        "starting_qty": p.starting_qty,
        "qty_sold": p.qty_sold,
        "current_stock": p.current_stock,
        "stock_status": p.effective_stock_status,
        "stock_status_override": p.stock_status_override,
        "retail_price": p.retail_price,
        "sale_price": p.sale_price,
        "unit_cost": p.unit_cost,
    }


class StockUpdate(BaseModel):
    stock_status_override: Optional[str] = None
    starting_qty: Optional[int] = None


@router.get("")
async def list_products(search: Optional[str] = Query(None), db: Session = Depends(get_db)):
    query = db.query(Product)
    if search:
        query = query.filter(Product.name.ilike(f"%{search}%"))
    return {"products": [_product_dict(p) for p in query.order_by(Product.name.asc()).all()]}


@router.post("/recalculate-from-orders")
async def recalculate_from_orders(db: Session = Depends(get_db)):
    return recalculate_products_from_orders(db)


@router.patch("/{product_id}/stock")
async def patch_product_stock(product_id: int, body: StockUpdate, db: Session = Depends(get_db)):
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    kwargs = {"starting_qty": body.starting_qty}
    if "stock_status_override" in body.model_fields_set:
        kwargs["stock_status_override"] = body.stock_status_override
    try:
        product = update_product_stock(db, product, **kwargs)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"product": _product_dict(product)}

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from storeops.models_sqlalchemy.models import Order, OrderLine, Product, StockStatus
from storeops.services.affiliate_expense import AffiliateInput, AffiliateResult, derive_affiliate_expense
from storeops.services.cost_lookup import lookup_cost
from storeops.services.order_payload import NormalizedLine, NormalizedOrder, normalize_order_payload
from storeops.services.upsert import UpsertAttempt, run_upsert_cascade
from storeops.utils.logger import logger
from storeops.utils.money import round_money

PLACEHOLDER_LINE_ID_BASE = 1_000_000


class InvalidOrderPayload(ValueError):
    pass


@dataclass
class ComputedLine:
    line_item_id: int
    source: NormalizedLine
    unit_cost: float
    line_total: float
    line_cost: float
    line_profit: float


@dataclass
class ReconciliationResult:
    order_number: str
    woo_order_id: Optional[int]
    total: float
    cost: float
    profit: float
    line_items: int
    upsert_path: str
    affiliate: AffiliateResult = field(default_factory=AffiliateResult)

    @property
    def margin(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.profit / self.total * 100

    @property
    def margin_display(self) -> str:
        return f"{self.margin:.1f}%"


def assign_line_item_ids(lines: List[NormalizedLine]) -> List[int]:
    """Supplied ids where usable, otherwise ``1_000_000 + position``.

    Ids are unique within the returned list.
    """
    used = set()
    ids = []
    for line in lines:
        candidate = line.line_item_id
        if candidate is None or candidate in used:
            candidate = PLACEHOLDER_LINE_ID_BASE + line.position
            while candidate in used:
                candidate += 1
        used.add(candidate)
        ids.append(candidate)
    return ids


def compute_lines(db: Session, order: NormalizedOrder) -> List[ComputedLine]:
    computed = []
    for line, line_item_id in zip(order.lines, assign_line_item_ids(order.lines)):
        if line.meta_cost is not None:
            unit_cost = line.meta_cost
        else:
            unit_cost = lookup_cost(db, line.name).cost_per_unit
        unit_cost = round_money(unit_cost)
        line_total = round_money(line.quantity * line.unit_price)
        line_cost = round_money(line.quantity * unit_cost)
        computed.append(
            ComputedLine(
                line_item_id=line_item_id,
                source=line,
                unit_cost=unit_cost,
                line_total=line_total,
                line_cost=line_cost,
                line_profit=round_money(line_total - line_cost),
            )
        )
    return computed


def build_order_upsert_attempts(values: Dict[str, Any]) -> List[UpsertAttempt]:
    attempts = [UpsertAttempt("order_number", ("order_number",), values)]
    if values.get("woo_order_id"):
        attempts.append(UpsertAttempt("woo_order_id", ("woo_order_id",), values))
    attempts.append(UpsertAttempt("insert", None, values))
    return attempts


def resolve_platform_order_id(db: Session, order: NormalizedOrder) -> Optional[int]:
    """The payload's platform id, else the one already stored on the order row."""
    if order.woo_order_id:
        return order.woo_order_id
    return (
        db.query(Order.woo_order_id)
        .filter(Order.order_number == order.order_number)
        .scalar()
    )


def _replace_lines(db: Session, order: NormalizedOrder, lines: List[ComputedLine]) -> None:
    platform_id = resolve_platform_order_id(db, order)
    stale = db.query(OrderLine).filter(
        or_(OrderLine.order_number == order.order_number, OrderLine.order_id == platform_id)
        if platform_id is not None
        else OrderLine.order_number == order.order_number
    )
    removed = stale.delete(synchronize_session=False)
    if removed:
        logger.debug(f"Removed {removed} stale lines for {order.order_number}")

    db.add_all(
        OrderLine(
            order_id=platform_id,
            line_item_id=line.line_item_id,
            order_number=order.order_number,
            woo_product_id=line.source.product_id,
            product_name=line.source.name,
            sku=line.source.sku,
            qty_ordered=line.source.quantity,
            customer_paid_per_unit=line.source.unit_price,
            our_cost_per_unit=line.unit_cost,
            line_total=line.line_total,
            line_cost=line.line_cost,
            line_profit=line.line_profit,
        )
        for line in lines
    )


def ensure_products(db: Session, lines: List[ComputedLine]) -> int:
    """Create placeholder products for unknown platform ids; backfill missing costs."""
    created = 0
    seen: Dict[int, Product] = {}
    for line in lines:
        product_id = line.source.product_id
        if not product_id:
            continue
        product = seen.get(product_id)
        if product is None:
            product = db.query(Product).filter(Product.woo_product_id == product_id).first()
        if product is None:
            product = Product(
                woo_product_id=product_id,
                name=line.source.name,
                sku=line.source.sku,
                unit_cost=line.unit_cost or None,
                retail_price=line.source.unit_price or None,
                stock_status=StockStatus.in_stock.value,
            )
            db.add(product)
            created += 1
        elif not product.unit_cost and line.unit_cost > 0:
            product.unit_cost = line.unit_cost
        seen[product_id] = product
    return created


def reconcile_order(db: Session, payload: Mapping[str, Any], origin: str = "webhook") -> ReconciliationResult:
    """Persist one inbound order and its lines, then derive the affiliate expense.

    Raises InvalidOrderPayload when the order cannot be identified and
    PersistenceError when every upsert attempt is rejected.
    """
    order = normalize_order_payload(payload)
    if not order.order_number:
        raise InvalidOrderPayload("Order payload has no order number or id")

    lines = compute_lines(db, order)
    line_total_sum = round_money(sum(line.line_total for line in lines))
    total = round_money(order.total) if order.total is not None else line_total_sum
    cost = round_money(sum(line.line_cost for line in lines))
    profit = round_money(total - cost)

    values = {
        "order_number": order.order_number,
        "woo_order_id": order.woo_order_id,
        "status": order.status,
        "order_date": order.order_date or datetime.now(timezone.utc),
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "coupon_code": order.coupon_code,
        "currency": order.currency,
        "notes": order.notes,
        "order_subtotal": round_money(total - order.shipping_total + order.discount_total),
        "order_total": total,
        "product_cost": cost,
        "profit": profit,
        "shipping_charged": round_money(order.shipping_total),
        "coupon_discount": round_money(order.discount_total),
        "updated_at": datetime.now(timezone.utc),
    }
    if values["woo_order_id"] is None:
        # keep a platform id learned from an earlier payload
        del values["woo_order_id"]

    try:
        path = run_upsert_cascade(db, Order, build_order_upsert_attempts(values))
        _replace_lines(db, order, lines)
        created_products = ensure_products(db, lines)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Reconciled {order.order_number} from {origin}: lines={len(lines)} total={total} "
        f"cost={cost} profit={profit} via={path.label} new_products={created_products}"
    )

    affiliate = derive_affiliate_expense(
        db,
        AffiliateInput(
            order_number=order.order_number,
            order_total=total,
            coupon_discount=order.discount_total,
            coupon_code=order.coupon_code,
            woo_order_id=order.woo_order_id,
        ),
    )

    return ReconciliationResult(
        order_number=order.order_number,
        woo_order_id=order.woo_order_id,
        total=total,
        cost=cost,
        profit=profit,
        line_items=len(lines),
        upsert_path=path.label,
        affiliate=affiliate,
    )

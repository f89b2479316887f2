from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storeops.config import settings
from storeops.models_sqlalchemy.models import AFFILIATE_CATEGORY, EXCLUDED_ORDER_STATUSES, Expense, ExpenseSource, Order
from storeops.services.expenses import find_order_expense
from storeops.utils.logger import logger
from storeops.utils.money import round_money
from storeops.utils.timezones import today_in_business_tz


@dataclass
class AffiliateInput:
    order_number: str
    order_total: float
    coupon_discount: float = 0.0
    coupon_code: Optional[str] = None
    woo_order_id: Optional[int] = None

    @property
    def used_coupon(self) -> bool:
        return (self.coupon_discount or 0) > 0 or bool((self.coupon_code or "").strip())


@dataclass
class AffiliateResult:
    created: bool = False
    updated: bool = False
    amount: Optional[float] = None
    error: Optional[str] = None


def affiliate_description(order_number: str, coupon_code: Optional[str]) -> str:
    description = f"Affiliate payment for {order_number}"
    if coupon_code and coupon_code.strip():
        description += f" (coupon {coupon_code.strip()})"
    return description


def derive_affiliate_expense(db: Session, order: AffiliateInput) -> AffiliateResult:
    """Keep exactly one commission expense per coupon order.

    Re-running with a new total updates the existing row in place.
    Commits on success; a store failure is logged and reported in the result.
    """
    if (order.order_total or 0) <= 0 or not order.used_coupon:
        return AffiliateResult()

    amount = round_money(order.order_total * settings.AFFILIATE_COMMISSION_RATE)
    if amount <= 0:
        return AffiliateResult()

    description = affiliate_description(order.order_number, order.coupon_code)
    extra = {"coupon_code": (order.coupon_code or "").strip() or None, "woo_order_id": order.woo_order_id}

    try:
        existing = find_order_expense(db, order.order_number, AFFILIATE_CATEGORY)
        if existing:
            existing.amount = amount
            existing.description = description
            existing.extra = extra
            db.commit()
            return AffiliateResult(updated=True, amount=amount)

        db.add(
            Expense(
                expense_date=date.fromisoformat(today_in_business_tz()),
                category=AFFILIATE_CATEGORY,
                description=description,
                vendor="Affiliate",
                amount=amount,
                source=ExpenseSource.affiliate_auto.value,
                order_number=order.order_number,
                extra=extra,
            )
        )
        db.commit()
        return AffiliateResult(created=True, amount=amount)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Affiliate expense for {order.order_number} failed: {exc}")
        return AffiliateResult(error=str(exc))


def backfill_affiliate_expenses(db: Session) -> dict:
    orders = (
        db.query(Order)
        .filter(Order.order_total > 0)
        .filter((Order.coupon_discount > 0) | ((Order.coupon_code.isnot(None)) & (Order.coupon_code != "")))
        .filter(Order.status.notin_(EXCLUDED_ORDER_STATUSES))
        .order_by(Order.id.asc())
        .all()
    )

    created = updated = 0
    errors = []
    for order in orders:
        result = derive_affiliate_expense(
            db,
            AffiliateInput(
                order_number=order.order_number,
                order_total=float(order.order_total or 0),
                coupon_discount=float(order.coupon_discount or 0),
                coupon_code=order.coupon_code,
                woo_order_id=order.woo_order_id,
            ),
        )
        created += int(result.created)
        updated += int(result.updated)
        if result.error:
            errors.append({"order_number": order.order_number, "error": result.error})

    logger.info(f"Affiliate backfill: processed={len(orders)} created={created} updated={updated}")
    return {"created": created, "updated": updated, "processed": len(orders), "errors": errors}

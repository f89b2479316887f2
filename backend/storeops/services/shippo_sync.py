"""Reconciles Shippo label and invoice costs into the expenses table.

* orders sync: insert-only, one shipping expense per matched order
* transaction resync: overwrites the order's shipping cost and its expense
* invoice sync: one expense per paid invoice, deduped by external_ref
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storeops.models_sqlalchemy.models import SHIPPING_CATEGORY, Expense, ExpenseSource, Order
from storeops.services.expenses import find_by_external_ref, find_order_expense
from storeops.services.order_payload import format_order_number
from storeops.services.shippo_client import ShippoClient, ShippoError
from storeops.utils.logger import logger
from storeops.utils.money import round_money, to_float, to_int
from storeops.utils.timezones import parse_date, today_in_business_tz

LABEL_TRANSACTION_SOURCE = "shippo_label_transaction"
TRANSACTION_RESYNC_SOURCE = "shippo_transaction_resync"


def normalize_shippo_order_number(value: Optional[str]) -> str:
    """Shippo uses ``#1068``; orders are stored as ``Order #1068``."""
    trimmed = (value or "").strip()
    if not trimmed:
        return ""
    if trimmed.lower().startswith("order"):
        rest = trimmed[5:].strip().lstrip("#").strip()
        return f"Order #{rest}"
    return f"Order #{trimmed.lstrip('#').strip()}"


def invoice_external_ref(invoice_number: Any) -> str:
    return f"shippo_invoice_{invoice_number}"


def _today() -> date:
    return date.fromisoformat(today_in_business_tz())


def _money_field(value: Any) -> float:
    if isinstance(value, dict):
        value = value.get("amount")
    return to_float(value, 0.0) or 0.0


async def transaction_cost(client: ShippoClient, transaction: Dict[str, Any]) -> float:
    rate = transaction.get("rate")
    if isinstance(rate, dict):
        return _money_field(rate)
    if isinstance(rate, str) and rate:
        return _money_field(await client.get_rate(rate))
    return 0.0


async def label_cost_for_order(client: ShippoClient, shippo_order: Dict[str, Any]) -> float:
    """Actual label cost: sum of rate amounts over the order's transactions."""
    total = 0.0
    for ref in shippo_order.get("transactions") or []:
        transaction_id = ref if isinstance(ref, str) else (ref or {}).get("object_id")
        if not transaction_id:
            continue
        transaction = await client.get_transaction(transaction_id)
        total += await transaction_cost(client, transaction)
    return round_money(total)


def find_order_for_shipping(db: Session, woo_order_id: Any = None, order_number: Optional[str] = None) -> Optional[Order]:
    woo_id = to_int(woo_order_id)
    if woo_id:
        order = db.query(Order).filter(Order.woo_order_id == woo_id).first()
        if order:
            return order
    if order_number:
        order = db.query(Order).filter(Order.order_number == order_number.strip()).first()
        if order:
            return order
        formatted = format_order_number(order_number, None)
        if formatted:
            return db.query(Order).filter(Order.order_number == formatted).first()
    return None


def apply_shipping_cost(
    db: Session,
    order: Order,
    cost: float,
    source_label: str,
    transaction_id: Optional[str] = None,
) -> str:
    """Overwrite the order's shipping cost and upsert its shipping expense.

    Returns "created" or "updated" for the expense. Does not commit.
    """
    cost = round_money(cost)
    now = datetime.now(timezone.utc)
    order.shipping_cost = cost
    order.shipping_cost_source = source_label
    order.shipping_cost_last_synced_at = now
    if transaction_id:
        order.shippo_transaction_id = transaction_id

    expense = find_order_expense(db, order.order_number, SHIPPING_CATEGORY)
    if expense:
        expense.amount = cost
        expense.updated_at = now
        return "updated"

    db.add(
        Expense(
            expense_date=_today(),
            category=SHIPPING_CATEGORY,
            description=f"Shipping label for {order.order_number}",
            vendor="Shippo",
            amount=cost,
            source=ExpenseSource.shippo_api.value,
            order_number=order.order_number,
            extra={"transaction_object_id": transaction_id} if transaction_id else None,
        )
    )
    return "created"


async def _sync_one_shippo_order(db: Session, client: ShippoClient, shippo_order: Dict[str, Any]) -> Dict[str, Any]:
    shippo_number = (shippo_order.get("order_number") or "").strip()
    detail: Dict[str, Any] = {"shippo_order_number": shippo_number, "order_number": None}
    if not shippo_number:
        return {**detail, "action": "skipped", "reason": "missing order_number"}

    ours = normalize_shippo_order_number(shippo_number)
    order = db.query(Order).filter(Order.order_number == ours).first()
    if order is None:
        return {**detail, "order_number": ours, "action": "skipped", "reason": "no matching order"}
    detail["order_number"] = order.order_number

    if find_order_expense(db, order.order_number, SHIPPING_CATEGORY):
        return {**detail, "action": "skipped", "reason": "shipping expense already exists"}
    external_ref = shippo_order.get("object_id")
    if external_ref and find_by_external_ref(db, external_ref):
        return {**detail, "action": "skipped", "reason": "shippo order already recorded"}

    cost = await label_cost_for_order(client, shippo_order)
    if cost <= 0:
        return {**detail, "action": "skipped", "reason": "no label cost"}

    expense_date = parse_date(shippo_order.get("placed_at")) or parse_date(order.order_date) or _today()
    method = shippo_order.get("shipping_method") or "Shippo"
    db.add(
        Expense(
            expense_date=expense_date,
            category=SHIPPING_CATEGORY,
            description=f"Shipping cost for {order.order_number} ({method})",
            vendor="Shippo",
            amount=cost,
            source=ExpenseSource.shippo_api.value,
            order_number=order.order_number,
            external_ref=external_ref,
            extra={
                "shippo_order_id": external_ref,
                "shipping_method": shippo_order.get("shipping_method"),
                "shipping_cost_currency": shippo_order.get("shipping_cost_currency"),
            },
        )
    )
    db.commit()
    return {**detail, "action": "created", "amount": cost}


async def sync_shipping_from_shippo_orders(
    db: Session,
    client: ShippoClient,
    max_pages: int = 10,
    results_per_page: int = 100,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict[str, Any]:
    """Insert a shipping expense for each Shippo order matched to a local order.

    Never updates an existing shipping expense, since those may have been
    corrected by hand; such orders are counted as skipped.
    """
    counts = {"processed": 0, "created": 0, "updated": 0, "skipped": 0, "errors": 0}
    details: List[Dict[str, Any]] = []

    next_url: Optional[str] = None
    for _ in range(max_pages):
        if next_url:
            response = await client.list_orders_next(next_url)
        else:
            response = await client.list_orders(page=1, results=results_per_page, start_date=start_date, end_date=end_date)

        for shippo_order in response.get("results") or []:
            counts["processed"] += 1
            try:
                detail = await _sync_one_shippo_order(db, client, shippo_order)
            except (ShippoError, SQLAlchemyError) as exc:
                db.rollback()
                logger.warning(f"Shippo order {shippo_order.get('order_number')} sync failed: {exc}")
                detail = {
                    "shippo_order_number": shippo_order.get("order_number"),
                    "order_number": None,
                    "action": "error",
                    "reason": str(exc),
                }
            counts["errors" if detail["action"] == "error" else detail["action"]] += 1
            details.append(detail)

        next_url = response.get("next")
        if not next_url:
            break

    logger.info(f"Shippo orders sync: {counts}")
    return {**counts, "details": details}


async def resync_shippo_expenses(
    db: Session,
    client: ShippoClient,
    force: bool = False,
    order_numbers: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Re-fetch each marked order's label transaction and overwrite its cost."""
    query = db.query(Order).filter(Order.shippo_transaction_id.isnot(None))
    if order_numbers:
        query = query.filter(Order.order_number.in_(order_numbers))
    orders = query.order_by(Order.id.asc()).all()

    updated = errors = 0
    details: List[Dict[str, Any]] = []
    for order in orders:
        order_number = order.order_number
        transaction_id = order.shippo_transaction_id
        try:
            transaction = await client.get_transaction(transaction_id)
            cost = round_money(await transaction_cost(client, transaction))
            if cost <= 0:
                errors += 1
                details.append({"order_number": order_number, "action": "error", "reason": "transaction has no rate amount"})
                continue

            expense = find_order_expense(db, order_number, SHIPPING_CATEGORY)
            unchanged = (
                order.shipping_cost is not None
                and abs(float(order.shipping_cost) - cost) <= 0.001
                and expense is not None
                and abs(float(expense.amount) - cost) <= 0.001
            )
            if unchanged and not force:
                details.append({"order_number": order_number, "action": "unchanged", "amount": cost})
                continue

            previous = order.shipping_cost
            expense_action = apply_shipping_cost(db, order, cost, TRANSACTION_RESYNC_SOURCE, transaction_id)
            db.commit()
            updated += 1
            details.append(
                {
                    "order_number": order_number,
                    "action": "updated",
                    "amount": cost,
                    "previous": previous,
                    "expense": expense_action,
                }
            )
        except (ShippoError, SQLAlchemyError) as exc:
            db.rollback()
            errors += 1
            logger.warning(f"Shippo resync for {order_number} failed: {exc}")
            details.append({"order_number": order_number, "action": "error", "reason": str(exc)})

    logger.info(f"Shippo transaction resync: checked={len(orders)} updated={updated} errors={errors}")
    return {"updated": updated, "errors": errors, "details": details}


def _insert_invoice_expense(
    db: Session,
    invoice_number: Any,
    amount: float,
    expense_date: date,
    source: str,
    description: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Expense:
    expense = Expense(
        expense_date=expense_date,
        category=SHIPPING_CATEGORY,
        description=description or f"Shippo Invoice #{invoice_number}",
        vendor="Shippo",
        amount=round_money(amount),
        source=source,
        external_ref=invoice_external_ref(invoice_number),
        extra=extra,
    )
    db.add(expense)
    return expense


async def sync_shippo_invoices(db: Session, client: ShippoClient, max_pages: int = 5, results: int = 50) -> Dict[str, Any]:
    """Insert one expense per paid Shippo invoice not seen before."""
    created = skipped = errors = 0
    details: List[Dict[str, Any]] = []

    next_url: Optional[str] = None
    for _ in range(max_pages):
        if next_url:
            response = await client.list_invoices_next(next_url)
        else:
            response = await client.list_invoices(status="PAID", page=1, results=results)

        for invoice in response.get("results") or []:
            number = invoice.get("invoice_number") or invoice.get("object_id")
            if not number:
                skipped += 1
                details.append({"invoice_number": None, "action": "skipped", "reason": "missing invoice number"})
                continue
            try:
                if find_by_external_ref(db, invoice_external_ref(number)):
                    skipped += 1
                    details.append({"invoice_number": number, "action": "skipped", "reason": "already imported"})
                    continue
                amount = _money_field(invoice.get("total_charged")) or _money_field(invoice.get("total_invoiced"))
                if amount <= 0:
                    skipped += 1
                    details.append({"invoice_number": number, "action": "skipped", "reason": "no amount"})
                    continue
                _insert_invoice_expense(
                    db,
                    number,
                    amount,
                    parse_date(invoice.get("invoice_paid_date")) or _today(),
                    ExpenseSource.shippo_invoice.value,
                    extra={"shippo_invoice_id": invoice.get("object_id")},
                )
                db.commit()
                created += 1
                details.append({"invoice_number": number, "action": "created", "amount": round_money(amount)})
            except SQLAlchemyError as exc:
                db.rollback()
                errors += 1
                logger.warning(f"Shippo invoice {number} insert failed: {exc}")
                details.append({"invoice_number": number, "action": "error", "reason": str(exc)})

        next_url = response.get("next")
        if not next_url:
            break

    logger.info(f"Shippo invoice sync: created={created} skipped={skipped} errors={errors}")
    return {"created": created, "skipped": skipped, "errors": errors, "details": details}


def record_invoice_email(
    db: Session,
    invoice_number: str,
    amount: float,
    invoice_date: Optional[str] = None,
    description: Optional[str] = None,
) -> Tuple[str, Expense]:
    """Store an invoice reported by the email webhook unless it is already known."""
    existing = find_by_external_ref(db, invoice_external_ref(invoice_number))
    if existing:
        return "duplicate", existing
    expense = _insert_invoice_expense(
        db,
        invoice_number,
        amount,
        parse_date(invoice_date) or _today(),
        ExpenseSource.shippo_email.value,
        description=description,
    )
    db.commit()
    return "created", expense

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from storeops.models_sqlalchemy.models import EXCLUDED_ORDER_STATUSES, Expense, Order, OrderLine
from storeops.utils.money import round_money


def empty_summary() -> Dict[str, Any]:
    return {
        "revenue": 0.0,
        "product_cost": 0.0,
        "gross_profit": 0.0,
        "shipping_charged": 0.0,
        "shipping_cost": 0.0,
        "expenses_total": 0.0,
        "net_profit": 0.0,
        "orders": 0,
        "units_sold": 0,
    }


def _counted_orders(db: Session, start: Optional[date], end: Optional[date]):
    query = db.query(Order).filter(Order.status.notin_(EXCLUDED_ORDER_STATUSES))
    if start:
        query = query.filter(Order.order_date >= datetime.combine(start, time.min))
    if end:
        query = query.filter(Order.order_date < datetime.combine(end + timedelta(days=1), time.min))
    return query


def summarize(db: Session, start: Optional[date] = None, end: Optional[date] = None) -> Dict[str, Any]:
    orders_q = _counted_orders(db, start, end)
    revenue, cost, shipping_charged, shipping_cost, count = orders_q.with_entities(
        func.coalesce(func.sum(Order.order_total), 0),
        func.coalesce(func.sum(Order.product_cost), 0),
        func.coalesce(func.sum(Order.shipping_charged), 0),
        func.coalesce(func.sum(Order.shipping_cost), 0),
        func.count(Order.id),
    ).one()

    counted = orders_q.with_entities(Order.order_number).subquery()
    units = (
        db.query(func.coalesce(func.sum(OrderLine.qty_ordered), 0))
        .filter(OrderLine.order_number.in_(select(counted.c.order_number)))
        .scalar()
    )

    expenses_q = db.query(func.coalesce(func.sum(Expense.amount), 0))
    if start:
        expenses_q = expenses_q.filter(Expense.expense_date >= start)
    if end:
        expenses_q = expenses_q.filter(Expense.expense_date <= end)
    expenses_total = float(expenses_q.scalar() or 0)

    gross = float(revenue) - float(cost)
    return {
        "revenue": round_money(revenue),
        "product_cost": round_money(cost),
        "gross_profit": round_money(gross),
        "shipping_charged": round_money(shipping_charged),
        "shipping_cost": round_money(shipping_cost),
        "expenses_total": round_money(expenses_total),
        "net_profit": round_money(gross - expenses_total),
        "orders": int(count or 0),
        "units_sold": int(units or 0),
    }


def product_performance(db: Session, limit: int = 50) -> List[Dict[str, Any]]:
    rows = (
        db.query(
            OrderLine.product_name,
            func.sum(OrderLine.qty_ordered).label("units"),
            func.sum(OrderLine.line_total).label("revenue"),
            func.sum(OrderLine.line_cost).label("cost"),
            func.sum(OrderLine.line_profit).label("profit"),
        )
        .join(Order, Order.order_number == OrderLine.order_number)
        .filter(Order.status.notin_(EXCLUDED_ORDER_STATUSES))
        .group_by(OrderLine.product_name)
        .order_by(func.sum(OrderLine.line_total).desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_name": name,
            "units": int(units or 0),
            "revenue": round_money(revenue or 0),
            "cost": round_money(cost or 0),
            "profit": round_money(profit or 0),
        }
        for name, units, revenue, cost, profit in rows
    ]

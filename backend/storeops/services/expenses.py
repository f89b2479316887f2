from __future__ import annotations

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from storeops.models_sqlalchemy.models import Expense, UNCATEGORIZED


def normalize_category(category: Optional[str]) -> str:
    cleaned = (category or "").strip()
    return cleaned or UNCATEGORIZED


def find_order_expense(db: Session, order_number: str, category: str) -> Optional[Expense]:
    """The single expense of ``category`` linked to an order, if any.

    Categories are compared case-insensitively so "shipping" rows written by
    older imports still count as the order's shipping expense.
    """
    return (
        db.query(Expense)
        .filter(Expense.order_number == order_number)
        .filter(func.lower(Expense.category) == category.lower())
        .order_by(Expense.expense_id.asc())
        .first()
    )


def find_by_external_ref(db: Session, external_ref: str) -> Optional[Expense]:
    return db.query(Expense).filter(Expense.external_ref == external_ref).first()

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional, Union

from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, UploadFile, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storeops.database import get_db
from storeops.models_sqlalchemy.models import EXPENSE_CATEGORIES, Expense, ExpenseCategorizationRule, ExpenseSource, RulePatternType
from storeops.services.accounting_parsers.csv_parser import StatementFormatError
from storeops.services.expense_import import (
    ImportLineLocked,
    ImportNotFound,
    NothingToApproveError,
    approve_import,
    get_import,
    stage_import,
    update_import_line,
)
from storeops.services.expense_rules_engine import next_priority, validate_pattern
from storeops.services.expenses import normalize_category
from storeops.utils.logger import logger
from storeops.utils.money import round_money
from storeops.utils.timezones import today_in_business_tz

router = APIRouter(prefix="/expenses", tags=["expenses"])


def _expense_dict(e: Expense) -> dict:
    return {
        "expense_id": e.expense_id,
        "expense_date": e.expense_date.isoformat() if e.expense_date else None,
        "category": e.category,
        "description": e.description,
        "vendor": e.vendor,
        "amount": float(e.amount) if e.amount is not None else None,
        "source": e.source,
        "order_number": e.order_number,
        "external_ref": e.external_ref,
        "metadata": e.extra,
    }


def _rule_dict(r: ExpenseCategorizationRule) -> dict:
    return {
        "id": r.id,
        "pattern": r.pattern,
        "pattern_type": r.pattern_type,
        "category": r.category,
        "priority": r.priority,
        "active": r.active,
    }


# --- Categorization rules ---


class RuleCreate(BaseModel):
    pattern: Optional[str] = None
    pattern_type: str = RulePatternType.contains.value
    category: Optional[str] = None


class RuleToggle(BaseModel):
    id: int
    active: bool


@router.get("/rules")
async def list_rules(db: Session = Depends(get_db)):
    rules = (
        db.query(ExpenseCategorizationRule)
        .order_by(ExpenseCategorizationRule.priority.desc(), ExpenseCategorizationRule.id.desc())
        .all()
    )
    return {"rules": [_rule_dict(r) for r in rules]}


@router.post("/rules", status_code=status.HTTP_201_CREATED)
async def create_rule(body: RuleCreate, db: Session = Depends(get_db)):
    pattern = (body.pattern or "").strip()
    category = (body.category or "").strip()
    if not pattern or not category:
        raise HTTPException(status_code=400, detail="pattern and category are required")
    try:
        validate_pattern(pattern, body.pattern_type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    rule = ExpenseCategorizationRule(
        pattern=pattern,
        pattern_type=body.pattern_type,
        category=category,
        priority=next_priority(db),
        active=True,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    logger.info(f"Created expense rule {rule.id}: {rule.pattern_type} {rule.pattern!r} -> {rule.category}")
    return {"rule": _rule_dict(rule)}


@router.patch("/rules")
async def toggle_rule(body: RuleToggle, db: Session = Depends(get_db)):
    rule = db.get(ExpenseCategorizationRule, body.id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    rule.active = body.active
    db.commit()
    return {"rule": _rule_dict(rule)}


@router.delete("/rules")
async def delete_rule(id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    if id is None:
        raise HTTPException(status_code=400, detail="id is required")
    rule = db.get(ExpenseCategorizationRule, id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    db.delete(rule)
    db.commit()
    logger.info(f"Deleted expense rule {id}")
    return {"success": True}


# --- CSV import ---


class ImportLineUpdate(BaseModel):
    line_id: int
    category: Optional[str] = None
    rejected: Optional[bool] = None


class ApproveRequest(BaseModel):
    line_ids: Union[Literal["all"], List[int]] = "all"


@router.post("/import")
async def import_statement(file: Optional[UploadFile] = File(None), db: Session = Depends(get_db)):
    if file is None:
        raise HTTPException(status_code=400, detail={"error": "No file provided"})
    content = await file.read()
    try:
        summary = stage_import(db, file.filename, content.decode("utf-8", errors="ignore"))
    except StatementFormatError as exc:
        detail = {"error": exc.message}
        if exc.headers:
            detail["headers"] = exc.headers
        if exc.hint:
            detail["hint"] = exc.hint
        raise HTTPException(status_code=400, detail=detail)

    return {
        "import_id": summary.import_id,
        "total_lines": summary.total_lines,
        "auto_categorized": summary.auto_categorized,
        "uncategorized": summary.uncategorized,
    }


@router.get("/import/{import_id}")
async def get_import_batch(import_id: int, db: Session = Depends(get_db)):
    try:
        batch, lines = get_import(db, import_id)
    except ImportNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {
        "batch": {
            "id": batch.id,
            "filename": batch.filename,
            "status": batch.status,
            "total_lines": batch.total_lines,
            "approved_lines": batch.approved_lines,
            "created_at": batch.created_at.isoformat() if batch.created_at else None,
        },
        "lines": [
            {
                "id": line.id,
                "line_number": line.line_number,
                "transaction_date": line.transaction_date.isoformat() if line.transaction_date else None,
                "description": line.description,
                "vendor": line.vendor,
                "amount": float(line.amount),
                "category": line.category,
                "auto_categorized": line.auto_categorized,
                "state": line.state,
                "expense_id": line.expense_id,
            }
            for line in lines
        ],
    }


@router.put("/import/{import_id}")
async def update_import_batch_line(import_id: int, body: ImportLineUpdate, db: Session = Depends(get_db)):
    try:
        line = update_import_line(
            db,
            import_id,
            body.line_id,
            category=body.category,
            rejected=body.rejected,
            clear_category="category" in body.model_fields_set and body.category is None,
        )
    except ImportNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ImportLineLocked as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {"id": line.id, "category": line.category, "state": line.state}


@router.post("/import/{import_id}/approve")
async def approve_import_batch(import_id: int, body: ApproveRequest = Body(default=ApproveRequest()), db: Session = Depends(get_db)):
    line_ids = None if body.line_ids == "all" else body.line_ids
    try:
        return approve_import(db, import_id, line_ids)
    except ImportNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except NothingToApproveError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


# --- Expenses ---


class ExpenseCreate(BaseModel):
    expense_date: Optional[date] = None
    category: Optional[str] = None
    description: Optional[str] = None
    vendor: Optional[str] = None
    amount: float
    order_number: Optional[str] = None


@router.get("/categories")
async def list_categories():
    return {"categories": EXPENSE_CATEGORIES}


@router.get("")
async def list_expenses(
    category: Optional[str] = Query(None),
    source: Optional[str] = Query(None),
    order_number: Optional[str] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    query = db.query(Expense)
    if category:
        query = query.filter(Expense.category == category)
    if source:
        query = query.filter(Expense.source == source)
    if order_number:
        query = query.filter(Expense.order_number == order_number)
    if start:
        query = query.filter(Expense.expense_date >= start)
    if end:
        query = query.filter(Expense.expense_date <= end)
    rows = query.order_by(Expense.expense_date.desc(), Expense.expense_id.desc()).limit(limit).all()
    return {"expenses": [_expense_dict(e) for e in rows]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_expense(body: ExpenseCreate, db: Session = Depends(get_db)):
    if body.amount <= 0:
        raise HTTPException(status_code=400, detail="amount must be greater than zero")
    expense = Expense(
        expense_date=body.expense_date or date.fromisoformat(today_in_business_tz()),
        category=normalize_category(body.category),
        description=body.description,
        vendor=body.vendor,
        amount=round_money(body.amount),
        source=ExpenseSource.manual.value,
        order_number=body.order_number,
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    return {"expense": _expense_dict(expense)}


@router.delete("/{expense_id}")
async def delete_expense(expense_id: int, db: Session = Depends(get_db)):
    expense = db.get(Expense, expense_id)
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    db.delete(expense)
    db.commit()
    logger.info(f"Deleted expense {expense_id}")
    return {"success": True}

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storeops.models_sqlalchemy.models import Expense, ExpenseImport, ExpenseImportLine, ExpenseSource, ImportStatus
from storeops.services.accounting_parsers.csv_parser import StatementFormatError, parse_statement
from storeops.services.expense_rules_engine import categorize, load_active_rules
from storeops.services.expenses import find_by_external_ref, normalize_category
from storeops.utils.logger import logger
from storeops.utils.money import round_money, to_float
from storeops.utils.timezones import today_in_business_tz


class ImportNotFound(LookupError):
    pass


class NothingToApproveError(ValueError):
    pass


class ImportLineLocked(ValueError):
    pass


@dataclass
class ImportSummary:
    import_id: int
    total_lines: int
    auto_categorized: int
    uncategorized: int
    skipped_rows: int = 0


def derive_import_status(approved_count: int, total: int) -> str:
    if total > 0 and approved_count == total:
        return ImportStatus.approved.value
    if approved_count > 0:
        return ImportStatus.partial.value
    return ImportStatus.pending.value


def import_line_ref(import_id: int, line_id: int) -> str:
    return f"import_{import_id}_line_{line_id}"


def stage_import(db: Session, filename: Optional[str], text: str) -> ImportSummary:
    """Parse a statement CSV into a pending batch, auto-categorizing lines.

    Raises StatementFormatError when the file cannot be used.
    """
    parsed = parse_statement(text)
    if not parsed.rows:
        raise StatementFormatError("No valid line items found in CSV", headers=parsed.headers)

    rules = load_active_rules(db)
    batch = ExpenseImport(filename=filename, status=ImportStatus.pending.value, total_lines=len(parsed.rows))
    db.add(batch)
    db.flush()

    auto = 0
    for row in parsed.rows:
        category = categorize(row.description, row.vendor, rules)
        auto += int(category is not None)
        db.add(
            ExpenseImportLine(
                import_id=batch.id,
                line_number=row.line_number,
                transaction_date=row.transaction_date,
                description=row.description,
                vendor=row.vendor,
                amount=row.amount,
                category=category,
                auto_categorized=category is not None,
                raw_row=row.raw,
            )
        )
    db.commit()

    summary = ImportSummary(
        import_id=batch.id,
        total_lines=len(parsed.rows),
        auto_categorized=auto,
        uncategorized=len(parsed.rows) - auto,
        skipped_rows=parsed.skipped,
    )
    logger.info(f"Staged expense import {batch.id} from {filename!r}: {summary}")
    return summary


def get_import(db: Session, import_id: int) -> Tuple[ExpenseImport, List[ExpenseImportLine]]:
    batch = db.get(ExpenseImport, import_id)
    if batch is None:
        raise ImportNotFound(f"Import {import_id} not found")
    lines = (
        db.query(ExpenseImportLine)
        .filter(ExpenseImportLine.import_id == import_id)
        .order_by(ExpenseImportLine.line_number.asc(), ExpenseImportLine.id.asc())
        .all()
    )
    return batch, lines


def refresh_batch_status(db: Session, batch: ExpenseImport) -> str:
    total = db.query(ExpenseImportLine).filter(ExpenseImportLine.import_id == batch.id).count()
    approved = (
        db.query(ExpenseImportLine)
        .filter(ExpenseImportLine.import_id == batch.id, ExpenseImportLine.approved == True)  # noqa: E712
        .count()
    )
    batch.total_lines = total
    batch.approved_lines = approved
    batch.status = derive_import_status(approved, total)
    return batch.status


def update_import_line(
    db: Session,
    import_id: int,
    line_id: int,
    category: Optional[str] = None,
    rejected: Optional[bool] = None,
    clear_category: bool = False,
) -> ExpenseImportLine:
    line = (
        db.query(ExpenseImportLine)
        .filter(ExpenseImportLine.import_id == import_id, ExpenseImportLine.id == line_id)
        .first()
    )
    if line is None:
        raise ImportNotFound(f"Line {line_id} not found in import {import_id}")
    if line.approved or line.rejected:
        raise ImportLineLocked(f"Line {line_id} is already {line.state}")

    if clear_category:
        line.category = None
        line.auto_categorized = False
    elif category is not None:
        line.category = category.strip() or None
        line.auto_categorized = False
    if rejected:
        line.rejected = True

    refresh_batch_status(db, line.batch)
    db.commit()
    return line


def _approve_line(db: Session, batch: ExpenseImport, line: ExpenseImportLine, amount: float) -> Expense:
    ref = import_line_ref(batch.id, line.id)
    with db.begin_nested():
        expense = find_by_external_ref(db, ref)
        if expense is None:
            expense = Expense(
                expense_date=line.transaction_date or date.fromisoformat(today_in_business_tz()),
                category=normalize_category(line.category),
                description=line.description or "Imported expense",
                vendor=line.vendor or "Unknown",
                amount=round_money(amount),
                source=ExpenseSource.import_.value,
                external_ref=ref,
                extra={"import_id": batch.id, "line_number": line.line_number},
            )
            db.add(expense)
            db.flush()
        line.approved = True
        line.expense_id = expense.expense_id
    return expense


def approve_import(db: Session, import_id: int, line_ids: Optional[Sequence[int]] = None) -> Dict[str, Any]:
    """Promote eligible staged lines to expenses.

    Eligible lines have a category and are neither approved nor rejected.
    Failures are reported per line; the rest of the batch still goes through.
    """
    batch = db.get(ExpenseImport, import_id)
    if batch is None:
        raise ImportNotFound(f"Import {import_id} not found")

    query = db.query(ExpenseImportLine).filter(
        ExpenseImportLine.import_id == import_id,
        ExpenseImportLine.approved == False,  # noqa: E712
        ExpenseImportLine.rejected == False,  # noqa: E712
        ExpenseImportLine.category.isnot(None),
        ExpenseImportLine.category != "",
    )
    if line_ids is not None:
        query = query.filter(ExpenseImportLine.id.in_(list(line_ids)))
    lines = query.order_by(ExpenseImportLine.line_number.asc()).all()
    if not lines:
        raise NothingToApproveError("No approvable lines found (must have category)")

    approved = 0
    results: List[Dict[str, Any]] = []
    for line in lines:
        line_id = line.id
        amount = to_float(line.amount, None)
        if amount is None or amount <= 0:
            results.append({"line_id": line_id, "success": False, "error": "Invalid amount"})
            continue
        try:
            expense = _approve_line(db, batch, line, amount)
        except SQLAlchemyError as exc:
            logger.warning(f"Approving import {import_id} line {line_id} failed: {exc}")
            results.append({"line_id": line_id, "success": False, "error": str(getattr(exc, "orig", None) or exc)})
            continue
        approved += 1
        results.append({"line_id": line_id, "success": True, "expense_id": expense.expense_id})

    status = refresh_batch_status(db, batch)
    db.commit()
    logger.info(f"Import {import_id}: approved {approved}/{len(lines)} lines, status={status}")
    return {"approved": approved, "results": results, "status": status}

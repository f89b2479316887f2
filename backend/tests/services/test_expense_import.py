import pytest

from storeops.models_sqlalchemy.models import Expense, ExpenseCategorizationRule, ExpenseImport, ExpenseImportLine
from storeops.services.accounting_parsers.csv_parser import StatementFormatError
from storeops.services.expense_import import (
    ImportLineLocked,
    NothingToApproveError,
    approve_import,
    derive_import_status,
    get_import,
    import_line_ref,
    stage_import,
    update_import_line,
)

STATEMENT = (
    "Date,Description,Amount\n"
    "2024-01-05,SHIPPO INC,-12.50\n"
    "2024-01-06,SHIPPO INC,-8.00\n"
    "2024-01-07,SHIPPO INC,-3.10\n"
    "2024-01-08,COFFEE SHOP,-4.25\n"
    "2024-01-09,OFFICE DEPOT,-19.99\n"
)


@pytest.fixture
def shipping_rule(db):
    db.add(ExpenseCategorizationRule(pattern="SHIPPO", pattern_type="contains", category="Shipping", priority=1))
    db.commit()


@pytest.mark.parametrize(
    "approved,total,expected",
    [(0, 5, "pending"), (3, 5, "partial"), (5, 5, "approved"), (0, 0, "pending")],
)
def test_derive_import_status(approved, total, expected):
    assert derive_import_status(approved, total) == expected


def test_stage_import_auto_categorizes(db, shipping_rule):
    summary = stage_import(db, "statement.csv", "Date,Merchant Name,Amount\n2024-01-05,SHIPPO INC,-12.50\n")

    assert summary.total_lines == 1
    assert summary.auto_categorized == 1
    batch, lines = get_import(db, summary.import_id)
    assert batch.status == "pending"
    assert lines[0].amount == 12.5
    assert lines[0].vendor == "SHIPPO INC"
    assert lines[0].category == "Shipping"
    assert lines[0].auto_categorized


def test_stage_import_without_usable_rows(db):
    with pytest.raises(StatementFormatError):
        stage_import(db, "empty.csv", "Date,Description,Amount\n2024-01-01,Nothing,0\n")
    assert db.query(ExpenseImport).count() == 0


def test_approving_three_of_five_is_partial(db, shipping_rule):
    summary = stage_import(db, "statement.csv", STATEMENT)

    result = approve_import(db, summary.import_id)

    assert result["approved"] == 3
    assert result["status"] == "partial"
    assert all(r["success"] for r in result["results"])
    batch = db.get(ExpenseImport, summary.import_id)
    assert batch.approved_lines == 3
    expenses = db.query(Expense).all()
    assert len(expenses) == 3
    assert {e.source for e in expenses} == {"import"}
    assert sorted(e.amount for e in expenses) == [3.1, 8.0, 12.5]


def test_approving_everything_marks_batch_approved(db, shipping_rule):
    summary = stage_import(db, "statement.csv", STATEMENT)
    _, lines = get_import(db, summary.import_id)
    for line in lines:
        if not line.category:
            update_import_line(db, summary.import_id, line.id, category="Office")

    result = approve_import(db, summary.import_id)

    assert result["approved"] == 5
    assert result["status"] == "approved"


def test_selected_line_ids_only(db, shipping_rule):
    summary = stage_import(db, "statement.csv", STATEMENT)
    _, lines = get_import(db, summary.import_id)

    result = approve_import(db, summary.import_id, line_ids=[lines[0].id])

    assert result["approved"] == 1
    assert db.query(Expense).count() == 1


def test_nothing_approvable(db):
    summary = stage_import(db, "statement.csv", STATEMENT)
    with pytest.raises(NothingToApproveError):
        approve_import(db, summary.import_id)


def test_invalid_amount_is_reported_per_line(db, shipping_rule):
    summary = stage_import(db, "statement.csv", STATEMENT)
    _, lines = get_import(db, summary.import_id)
    lines[0].amount = 0
    db.commit()

    result = approve_import(db, summary.import_id)

    assert result["approved"] == 2
    failed = [r for r in result["results"] if not r["success"]]
    assert failed == [{"line_id": lines[0].id, "success": False, "error": "Invalid amount"}]


def test_existing_expense_with_same_ref_is_reused(db, shipping_rule):
    from datetime import date

    summary = stage_import(db, "statement.csv", STATEMENT)
    _, lines = get_import(db, summary.import_id)
    ref = import_line_ref(summary.import_id, lines[0].id)
    db.add(Expense(expense_date=date(2024, 1, 5), category="Shipping", amount=12.5, external_ref=ref))
    db.commit()

    approve_import(db, summary.import_id)

    assert db.query(Expense).filter(Expense.external_ref == ref).count() == 1
    assert db.query(Expense).count() == 3


def test_approved_and_rejected_lines_are_locked(db, shipping_rule):
    summary = stage_import(db, "statement.csv", STATEMENT)
    _, lines = get_import(db, summary.import_id)
    approve_import(db, summary.import_id, line_ids=[lines[0].id])
    update_import_line(db, summary.import_id, lines[3].id, rejected=True)

    with pytest.raises(ImportLineLocked):
        update_import_line(db, summary.import_id, lines[0].id, category="Other")
    with pytest.raises(ImportLineLocked):
        update_import_line(db, summary.import_id, lines[3].id, category="Other")

    rejected = db.get(ExpenseImportLine, lines[3].id)
    assert rejected.state == "rejected"


def test_manual_category_clears_auto_flag(db, shipping_rule):
    summary = stage_import(db, "statement.csv", STATEMENT)
    _, lines = get_import(db, summary.import_id)

    line = update_import_line(db, summary.import_id, lines[0].id, category="Postage")

    assert line.category == "Postage"
    assert not line.auto_categorized

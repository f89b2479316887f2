from datetime import date

import pytest

from storeops.models_sqlalchemy.models import Expense, Order
from storeops.services.shippo_client import ShippoError
from storeops.services.shippo_sync import (
    TRANSACTION_RESYNC_SOURCE,
    find_order_for_shipping,
    normalize_shippo_order_number,
    record_invoice_email,
    resync_shippo_expenses,
    sync_shipping_from_shippo_orders,
    sync_shippo_invoices,
)


class FakeShippoClient:
    def __init__(self, orders=None, transactions=None, rates=None, invoices=None):
        self.orders = orders or []
        self.transactions = transactions or {}
        self.rates = rates or {}
        self.invoices = invoices or []
        self.transaction_calls = []

    async def list_orders(self, page=1, results=100, start_date=None, end_date=None):
        return {"results": self.orders, "next": None}

    async def list_orders_next(self, url):
        return {"results": [], "next": None}

    async def get_transaction(self, transaction_id):
        self.transaction_calls.append(transaction_id)
        if transaction_id not in self.transactions:
            raise ShippoError("Shippo API error: 404", status_code=404)
        return self.transactions[transaction_id]

    async def get_rate(self, rate_id):
        return self.rates[rate_id]

    async def list_invoices(self, status="PAID", page=1, results=50):
        return {"results": self.invoices, "next": None}

    async def list_invoices_next(self, url):
        return {"results": [], "next": None}


def _order(db, number, **kw):
    order = Order(order_number=number, status="completed", **kw)
    db.add(order)
    db.commit()
    return order


@pytest.mark.parametrize(
    "raw,expected",
    [("#1068", "Order #1068"), ("1068", "Order #1068"), ("Order #1068", "Order #1068"), (" ", "")],
)
def test_normalize_shippo_order_number(raw, expected):
    assert normalize_shippo_order_number(raw) == expected


def test_find_order_for_shipping(db):
    _order(db, "Order #55", woo_order_id=555)
    assert find_order_for_shipping(db, woo_order_id="555").order_number == "Order #55"
    assert find_order_for_shipping(db, order_number="Order #55").order_number == "Order #55"
    assert find_order_for_shipping(db, order_number="55").order_number == "Order #55"
    assert find_order_for_shipping(db, order_number="56") is None


@pytest.mark.asyncio
async def test_orders_sync_creates_expense_from_label_cost(db):
    _order(db, "Order #1068")
    client = FakeShippoClient(
        orders=[
            {
                "object_id": "so_1",
                "order_number": "#1068",
                "placed_at": "2024-03-02T10:00:00Z",
                "shipping_method": "USPS Priority",
                "transactions": ["tx_1", {"object_id": "tx_2"}],
            }
        ],
        transactions={"tx_1": {"rate": {"amount": "7.10"}}, "tx_2": {"rate": "rate_2"}},
        rates={"rate_2": {"amount": "1.25"}},
    )

    summary = await sync_shipping_from_shippo_orders(db, client)

    assert summary["processed"] == 1
    assert summary["created"] == 1
    expense = db.query(Expense).one()
    assert expense.amount == 8.35
    assert expense.expense_date == date(2024, 3, 2)
    assert expense.order_number == "Order #1068"
    assert expense.external_ref == "so_1"


@pytest.mark.asyncio
async def test_orders_sync_never_overwrites_existing_shipping_expense(db):
    _order(db, "Order #1068")
    db.add(Expense(expense_date=date(2024, 1, 1), category="shipping", amount=5.0, order_number="Order #1068"))
    db.commit()
    client = FakeShippoClient(
        orders=[{"object_id": "so_1", "order_number": "#1068", "transactions": ["tx_1"]}],
        transactions={"tx_1": {"rate": {"amount": "9.99"}}},
    )

    summary = await sync_shipping_from_shippo_orders(db, client)

    assert summary["skipped"] == 1
    assert summary["created"] == 0
    assert summary["updated"] == 0
    assert db.query(Expense).one().amount == 5.0
    assert client.transaction_calls == []


@pytest.mark.asyncio
async def test_orders_sync_skips_unmatched_and_free_orders(db):
    _order(db, "Order #2")
    client = FakeShippoClient(
        orders=[
            {"object_id": "so_1", "order_number": "#1"},
            {"object_id": "so_2", "order_number": "#2", "transactions": []},
            {"object_id": "so_3", "order_number": ""},
        ]
    )

    summary = await sync_shipping_from_shippo_orders(db, client)

    assert summary["processed"] == 3
    assert summary["skipped"] == 3
    assert [d["reason"] for d in summary["details"]] == ["no matching order", "no label cost", "missing order_number"]


@pytest.mark.asyncio
async def test_orders_sync_reports_per_order_errors(db):
    _order(db, "Order #3")
    client = FakeShippoClient(orders=[{"object_id": "so_3", "order_number": "#3", "transactions": ["missing"]}])

    summary = await sync_shipping_from_shippo_orders(db, client)

    assert summary["errors"] == 1
    assert summary["details"][0]["action"] == "error"


@pytest.mark.asyncio
async def test_resync_overwrites_cost_and_expense(db):
    _order(db, "Order #10", shippo_transaction_id="tx_10", shipping_cost=4.0)
    db.add(Expense(expense_date=date(2024, 1, 1), category="Shipping", amount=4.0, order_number="Order #10"))
    db.commit()
    client = FakeShippoClient(transactions={"tx_10": {"rate": {"amount": "6.40"}}})

    summary = await resync_shippo_expenses(db, client)

    assert summary["updated"] == 1
    assert summary["details"][0]["previous"] == 4.0
    db.expire_all()
    order = db.query(Order).one()
    assert order.shipping_cost == 6.4
    assert order.shipping_cost_source == TRANSACTION_RESYNC_SOURCE
    assert db.query(Expense).one().amount == 6.4


@pytest.mark.asyncio
async def test_resync_leaves_matching_cost_unless_forced(db):
    _order(db, "Order #11", shippo_transaction_id="tx_11", shipping_cost=6.4)
    db.add(Expense(expense_date=date(2024, 1, 1), category="Shipping", amount=6.4, order_number="Order #11"))
    db.commit()
    client = FakeShippoClient(transactions={"tx_11": {"rate": {"amount": "6.40"}}})

    summary = await resync_shippo_expenses(db, client)
    assert summary["updated"] == 0
    assert summary["details"][0]["action"] == "unchanged"

    forced = await resync_shippo_expenses(db, client, force=True)
    assert forced["updated"] == 1


@pytest.mark.asyncio
async def test_resync_creates_missing_expense(db):
    _order(db, "Order #12", shippo_transaction_id="tx_12")
    client = FakeShippoClient(transactions={"tx_12": {"rate": {"amount": "3.00"}}})

    summary = await resync_shippo_expenses(db, client)

    assert summary["details"][0]["expense"] == "created"
    assert db.query(Expense).one().amount == 3.0


@pytest.mark.asyncio
async def test_invoice_sync_dedupes_by_invoice_number(db):
    invoices = [
        {"object_id": "inv_a", "invoice_number": "INV-1", "total_charged": {"amount": "42.10"}, "invoice_paid_date": "2024-04-01"},
        {"object_id": "inv_b", "invoice_number": "INV-2", "total_charged": {"amount": "0"}},
    ]
    client = FakeShippoClient(invoices=invoices)

    first = await sync_shippo_invoices(db, client)
    second = await sync_shippo_invoices(db, client)

    assert first["created"] == 1
    assert first["skipped"] == 1
    assert second["created"] == 0
    assert second["skipped"] == 2
    expense = db.query(Expense).one()
    assert expense.external_ref == "shippo_invoice_INV-1"
    assert expense.expense_date == date(2024, 4, 1)


def test_invoice_email_is_idempotent(db):
    action, expense = record_invoice_email(db, "INV-9", 12.5, "2024-05-05")
    again, same = record_invoice_email(db, "INV-9", 12.5, "2024-05-05")

    assert action == "created"
    assert again == "duplicate"
    assert same.expense_id == expense.expense_id
    assert db.query(Expense).count() == 1

"""Initial store operations schema: orders, products, expenses, imports, rules

Revision ID: storeops_initial_20261019
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "storeops_initial_20261019"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money(nullable: bool = False, default: bool = True) -> dict:
    kwargs = {"nullable": nullable}
    if default:
        kwargs["server_default"] = sa.text("0")
    return kwargs


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.Text(), nullable=False, unique=True),
        sa.Column("woo_order_id", sa.BigInteger(), nullable=True, unique=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="processing"),
        sa.Column("order_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("customer_name", sa.Text(), nullable=True),
        sa.Column("customer_email", sa.Text(), nullable=True),
        sa.Column("coupon_code", sa.Text(), nullable=True),
        sa.Column("currency", sa.Text(), nullable=False, server_default="USD"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("order_subtotal", sa.Numeric(12, 2), **_money()),
        sa.Column("order_total", sa.Numeric(12, 2), **_money()),
        sa.Column("product_cost", sa.Numeric(12, 2), **_money()),
        sa.Column("profit", sa.Numeric(12, 2), **_money()),
        sa.Column("shipping_charged", sa.Numeric(12, 2), **_money()),
        sa.Column("shipping_cost", sa.Numeric(12, 2), **_money(nullable=True, default=False)),
        sa.Column("coupon_discount", sa.Numeric(12, 2), **_money()),
        sa.Column("shipping_cost_source", sa.Text(), nullable=True),
        sa.Column("shipping_cost_last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shippo_transaction_id", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_orders_status", "orders", ["status"])
    op.create_index("idx_orders_order_date", "orders", ["order_date"])

    op.create_table(
        "order_lines",
        sa.Column("line_id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.BigInteger(), nullable=True),
        sa.Column("line_item_id", sa.BigInteger(), nullable=False),
        sa.Column("order_number", sa.Text(), nullable=False),
        sa.Column("woo_product_id", sa.BigInteger(), nullable=True),
        sa.Column("product_name", sa.Text(), nullable=True),
        sa.Column("sku", sa.Text(), nullable=True),
        sa.Column("qty_ordered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("customer_paid_per_unit", sa.Numeric(12, 2), **_money()),
        sa.Column("our_cost_per_unit", sa.Numeric(12, 2), **_money()),
        sa.Column("line_total", sa.Numeric(12, 2), **_money()),
        sa.Column("line_cost", sa.Numeric(12, 2), **_money()),
        sa.Column("line_profit", sa.Numeric(12, 2), **_money()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("order_number", "line_item_id", name="uq_order_lines_order_line_item"),
    )
    op.create_index("ix_order_lines_order_id", "order_lines", ["order_id"])
    op.create_index("ix_order_lines_order_number", "order_lines", ["order_number"])
    op.create_index("ix_order_lines_woo_product_id", "order_lines", ["woo_product_id"])

    op.create_table(
        "products",
        sa.Column("product_id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("woo_product_id", sa.BigInteger(), nullable=True, unique=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("sku", sa.Text(), nullable=True),
        sa.Column("starting_qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qty_sold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stock_status", sa.Text(), nullable=False, server_default="In Stock"),
        sa.Column("stock_status_override", sa.Text(), nullable=True),
        sa.Column("retail_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("sale_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("current_stock >= 0", name="ck_products_current_stock_non_negative"),
    )

    op.create_table(
        "product_cost_lookup",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("product_name", sa.Text(), nullable=False),
        sa.Column("strength", sa.Text(), nullable=True),
        sa.Column("cost_per_unit", sa.Numeric(12, 2), **_money()),
        sa.Column("vendor", sa.Text(), nullable=True),
    )
    op.create_index("idx_product_cost_lookup_name", "product_cost_lookup", ["product_name"])

    op.create_table(
        "expenses",
        sa.Column("expense_id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("category", sa.Text(), nullable=False, server_default="Uncategorized"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("vendor", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("source", sa.Text(), nullable=False, server_default="manual"),
        sa.Column("order_number", sa.Text(), nullable=True),
        sa.Column("external_ref", sa.Text(), nullable=True, unique=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("idx_expenses_date", "expenses", ["expense_date"])
    op.create_index("idx_expenses_order_category", "expenses", ["order_number", "category"])
    op.create_index("ix_expenses_order_number", "expenses", ["order_number"])

    op.create_table(
        "expense_imports",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("filename", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("total_lines", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("approved_lines", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "expense_import_lines",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("import_id", sa.BigInteger(), sa.ForeignKey("expense_imports.id", ondelete="CASCADE"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("vendor", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("auto_categorized", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("rejected", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("expense_id", sa.BigInteger(), sa.ForeignKey("expenses.expense_id", ondelete="SET NULL"), nullable=True),
        sa.Column("raw_row", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("NOT (approved AND rejected)", name="ck_expense_import_lines_single_state"),
    )
    op.create_index("ix_expense_import_lines_import_id", "expense_import_lines", ["import_id"])

    op.create_table(
        "expense_categorization_rules",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("pattern", sa.Text(), nullable=False),
        sa.Column("pattern_type", sa.Text(), nullable=False, server_default="contains"),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("idx_expense_rules_active_priority", "expense_categorization_rules", ["active", "priority"])


def downgrade() -> None:
    op.drop_table("expense_categorization_rules")
    op.drop_table("expense_import_lines")
    op.drop_table("expense_imports")
    op.drop_table("expenses")
    op.drop_table("product_cost_lookup")
    op.drop_table("products")
    op.drop_table("order_lines")
    op.drop_table("orders")

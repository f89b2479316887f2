from sqlalchemy import Column, BigInteger, Integer, Text, Date, DateTime, Boolean, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from . import Base, BigIntPK, JSONDoc, Money


class OrderStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    on_hold = "on-hold"
    cancelled = "cancelled"
    refunded = "refunded"
    failed = "failed"
    checkout_draft = "checkout-draft"
    draft = "draft"


# Orders in these states never count towards revenue, profit or units sold.
EXCLUDED_ORDER_STATUSES = (
    OrderStatus.checkout_draft.value,
    OrderStatus.cancelled.value,
    OrderStatus.draft.value,
    OrderStatus.refunded.value,
    OrderStatus.failed.value,
)


class StockStatus(str, enum.Enum):
    in_stock = "In Stock"
    low_stock = "LOW STOCK"
    out_of_stock = "OUT OF STOCK"


class ExpenseSource(str, enum.Enum):
    manual = "manual"
    import_ = "import"
    shippo_api = "shippo_api"
    shippo_email = "shippo_email"
    shippo_invoice = "shippo_invoice"
    affiliate_auto = "affiliate_auto"


class RulePatternType(str, enum.Enum):
    contains = "contains"
    exact = "exact"
    regex = "regex"


class ImportStatus(str, enum.Enum):
    pending = "pending"
    partial = "partial"
    approved = "approved"


SHIPPING_CATEGORY = "Shipping"
AFFILIATE_CATEGORY = "affiliate"
UNCATEGORIZED = "Uncategorized"

EXPENSE_CATEGORIES = [
    "Shipping",
    "Packaging",
    "Labels",
    "Tape",
    "Stickers",
    "Supplies",
    "Software",
    "Marketing",
    "Shipping Supplies",
    "Office",
    "Inventory",
    "Other",
]


class Order(Base):
    __tablename__ = "orders"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_number = Column(Text, nullable=False, unique=True)
    woo_order_id = Column(BigInteger, nullable=True, unique=True)
    status = Column(Text, nullable=False, default=OrderStatus.processing.value)
    order_date = Column(DateTime(timezone=True), nullable=True)

    customer_name = Column(Text, nullable=True)
    customer_email = Column(Text, nullable=True)
    coupon_code = Column(Text, nullable=True)
    currency = Column(Text, nullable=False, default="USD")
    notes = Column(Text, nullable=True)

    order_subtotal = Column(Money, nullable=False, default=0)
    order_total = Column(Money, nullable=False, default=0)
    product_cost = Column(Money, nullable=False, default=0)
    profit = Column(Money, nullable=False, default=0)
    shipping_charged = Column(Money, nullable=False, default=0)
    shipping_cost = Column(Money, nullable=True)
    coupon_discount = Column(Money, nullable=False, default=0)

    # Set by the label-cost webhook / transactions resync. A non-null
    # shippo_transaction_id marks the order as eligible for resync.
    shipping_cost_source = Column(Text, nullable=True)
    shipping_cost_last_synced_at = Column(DateTime(timezone=True), nullable=True)
    shippo_transaction_id = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_orders_status", "status"),
        Index("idx_orders_order_date", "order_date"),
    )


class OrderLine(Base):
    __tablename__ = "order_lines"

    line_id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, nullable=True, index=True)  # platform (WooCommerce) order id
    line_item_id = Column(BigInteger, nullable=False)
    order_number = Column(Text, nullable=False, index=True)
    woo_product_id = Column(BigInteger, nullable=True, index=True)

    product_name = Column(Text, nullable=True)
    sku = Column(Text, nullable=True)
    qty_ordered = Column(Integer, nullable=False, default=0)
    customer_paid_per_unit = Column(Money, nullable=False, default=0)
    our_cost_per_unit = Column(Money, nullable=False, default=0)
    line_total = Column(Money, nullable=False, default=0)
    line_cost = Column(Money, nullable=False, default=0)
    line_profit = Column(Money, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("order_number", "line_item_id", name="uq_order_lines_order_line_item"),
    )


class Product(Base):
    __tablename__ = "products"

    product_id = Column(BigIntPK, primary_key=True, autoincrement=True)
    woo_product_id = Column(BigInteger, nullable=True, unique=True)
    name = Column(Text, nullable=False)
    sku = Column(Text, nullable=True)

    starting_qty = Column(Integer, nullable=False, default=0)
    qty_sold = Column(Integer, nullable=False, default=0)
    current_stock = Column(Integer, nullable=False, default=0)
    stock_status = Column(Text, nullable=False, default=StockStatus.in_stock.value)
    stock_status_override = Column(Text, nullable=True)

    retail_price = Column(Money, nullable=True)
    sale_price = Column(Money, nullable=True)  # null = not on sale
    unit_cost = Column(Money, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_products_current_stock_non_negative"),
    )

    @property
    def effective_stock_status(self) -> str:
        return self.stock_status_override or self.stock_status

    @property
    def effective_price(self):
        return self.sale_price if self.sale_price is not None else self.retail_price


class ProductCostLookup(Base):
    __tablename__ = "product_cost_lookup"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_name = Column(Text, nullable=False)
    strength = Column(Text, nullable=True)
    cost_per_unit = Column(Money, nullable=False, default=0)
    vendor = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_product_cost_lookup_name", "product_name"),
    )


class Expense(Base):
    __tablename__ = "expenses"

    expense_id = Column(BigIntPK, primary_key=True, autoincrement=True)
    expense_date = Column(Date, nullable=False)
    category = Column(Text, nullable=False, default=UNCATEGORIZED)
    description = Column(Text, nullable=True)
    vendor = Column(Text, nullable=True)
    amount = Column(Money, nullable=False)
    source = Column(Text, nullable=False, default=ExpenseSource.manual.value)
    order_number = Column(Text, nullable=True, index=True)
    external_ref = Column(Text, nullable=True, unique=True)
    extra = Column("metadata", JSONDoc, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_expenses_date", "expense_date"),
        Index("idx_expenses_order_category", "order_number", "category"),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )


class ExpenseImport(Base):
    __tablename__ = "expense_imports"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    filename = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default=ImportStatus.pending.value)
    total_lines = Column(Integer, nullable=False, default=0)
    approved_lines = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    lines = relationship("ExpenseImportLine", back_populates="batch", order_by="ExpenseImportLine.line_number")


class ExpenseImportLine(Base):
    __tablename__ = "expense_import_lines"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    import_id = Column(BigInteger, ForeignKey("expense_imports.id", ondelete="CASCADE"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)
    transaction_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)
    vendor = Column(Text, nullable=True)
    amount = Column(Money, nullable=False)
    category = Column(Text, nullable=True)
    auto_categorized = Column(Boolean, nullable=False, default=False)
    approved = Column(Boolean, nullable=False, default=False)
    rejected = Column(Boolean, nullable=False, default=False)
    expense_id = Column(BigInteger, ForeignKey("expenses.expense_id", ondelete="SET NULL"), nullable=True)
    raw_row = Column(JSONDoc, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("NOT (approved AND rejected)", name="ck_expense_import_lines_single_state"),
    )

    batch = relationship("ExpenseImport", back_populates="lines")

    @property
    def state(self) -> str:
        if self.approved:
            return "approved"
        if self.rejected:
            return "rejected"
        return "pending"


class ExpenseCategorizationRule(Base):
    __tablename__ = "expense_categorization_rules"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    pattern = Column(Text, nullable=False)
    pattern_type = Column(Text, nullable=False, default=RulePatternType.contains.value)
    category = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_expense_rules_active_priority", "active", "priority"),
    )

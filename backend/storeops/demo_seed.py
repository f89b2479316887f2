"""Deterministic sample data for the demo store."""
from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Dict

from sqlalchemy.orm import Session

from storeops.config import settings
from storeops.models_sqlalchemy.models import (
    EXCLUDED_ORDER_STATUSES,
    Expense,
    ExpenseCategorizationRule,
    ExpenseSource,
    Order,
    OrderLine,
    Product,
    ProductCostLookup,
    RulePatternType,
)
from storeops.services.product_stock import compute_current_stock, stock_status_for_quantity

DEMO_PRODUCT_NAMES = [
    "Neon Pre-Workout",
    "Performance Stack",
    "Energy Boost",
    "Recovery Formula",
    "Strength Builder",
    "Endurance Plus",
    "Focus Enhancer",
    "Vitality Blend",
    "Power Complex",
    "Elite Formula",
]
DEMO_VARIANTS = ["10mg", "20mg", "30mg", "50mg", "100mg", "5ml", "10ml"]
DEMO_CUSTOMERS = [
    "Alex Johnson",
    "Sarah Williams",
    "Michael Brown",
    "Emily Davis",
    "David Miller",
    "Jessica Wilson",
]
DEMO_STATUSES = ["completed", "completed", "completed", "processing", "pending", "on-hold", "cancelled", "refunded"]
DEMO_EXPENSES = [
    ("Marketing", "Marketing Pro", "Social ads"),
    ("Packaging", "Packaging Solutions", "Mailer boxes"),
    ("Software", "Tech Services", "Store plugins"),
    ("Supplies", "Supply Co", "Label rolls"),
    ("Office", "Office Depot", "Printer ink"),
]
DEMO_RULES = [
    ("SHIPPO", RulePatternType.contains.value, "Shipping"),
    ("USPS", RulePatternType.contains.value, "Shipping"),
    ("ULINE", RulePatternType.contains.value, "Packaging"),
    ("FACEBOOK|META ADS|GOOGLE ADS", RulePatternType.regex.value, "Marketing"),
    ("STAPLES", RulePatternType.contains.value, "Office"),
]


def _money(value: float) -> float:
    return round(value, 2)


def seed_demo_data(db: Session, seed: int = 42, order_count: int = 60) -> Dict[str, int]:
    rng = random.Random(seed)
    now = datetime.now(timezone.utc)

    products = []
    for idx, base_name in enumerate(DEMO_PRODUCT_NAMES, start=1):
        variant = rng.choice(DEMO_VARIANTS)
        cost = _money(rng.uniform(10, 60))
        retail = _money(cost * rng.uniform(1.5, 3.0))
        product = Product(
            woo_product_id=5000 + idx,
            name=f"{base_name} - {variant}",
            sku=f"DEMO-{rng.randint(0, 9999):04d}",
            starting_qty=rng.randint(50, 250),
            qty_sold=0,
            retail_price=retail,
            sale_price=_money(retail * 0.9) if rng.random() > 0.8 else None,
            unit_cost=cost,
        )
        products.append(product)
        db.add(ProductCostLookup(product_name=base_name, strength=variant, cost_per_unit=cost, vendor="Supply Co"))
    db.add_all(products)

    sold: Dict[int, int] = {}
    for number in range(1000, 1000 + order_count):
        status = rng.choice(DEMO_STATUSES)
        order_number = f"Order #{number}"
        has_coupon = rng.random() > 0.7
        shipping_charged = 0.0 if rng.random() > 0.6 else _money(rng.uniform(5, 15))

        subtotal = 0.0
        cost_total = 0.0
        for position, product in enumerate(rng.sample(products, rng.randint(1, 3))):
            qty = rng.randint(1, 4)
            unit_price = product.effective_price
            line_total = _money(qty * unit_price)
            line_cost = _money(qty * product.unit_cost)
            db.add(
                OrderLine(
                    order_id=number,
                    line_item_id=number * 10 + position,
                    order_number=order_number,
                    woo_product_id=product.woo_product_id,
                    product_name=product.name,
                    sku=product.sku,
                    qty_ordered=qty,
                    customer_paid_per_unit=unit_price,
                    our_cost_per_unit=product.unit_cost,
                    line_total=line_total,
                    line_cost=line_cost,
                    line_profit=_money(line_total - line_cost),
                )
            )
            subtotal += line_total
            cost_total += line_cost
            if status not in EXCLUDED_ORDER_STATUSES:
                sold[product.woo_product_id] = sold.get(product.woo_product_id, 0) + qty

        discount = _money(subtotal * 0.1) if has_coupon else 0.0
        total = _money(subtotal - discount + shipping_charged)
        db.add(
            Order(
                order_number=order_number,
                woo_order_id=number,
                status=status,
                order_date=now - timedelta(days=rng.randint(0, 90), hours=rng.randint(0, 23)),
                customer_name=rng.choice(DEMO_CUSTOMERS),
                customer_email=f"demo.user{rng.randint(1, 999)}@example.com",
                coupon_code=f"SAVE{rng.randint(5, 20)}" if has_coupon else None,
                currency="USD",
                order_subtotal=_money(subtotal),
                order_total=total,
                product_cost=_money(cost_total),
                profit=_money(total - cost_total),
                shipping_charged=shipping_charged,
                shipping_cost=_money(shipping_charged * 0.6) if shipping_charged else None,
                coupon_discount=discount,
            )
        )

    for product in products:
        product.qty_sold = sold.get(product.woo_product_id, 0)
        product.current_stock = compute_current_stock(product.starting_qty, product.qty_sold)
        product.stock_status = stock_status_for_quantity(product.current_stock, settings.LOW_STOCK_THRESHOLD)

    expense_count = 0
    for days_ago in range(0, 90, 7):
        category, vendor, description = rng.choice(DEMO_EXPENSES)
        db.add(
            Expense(
                expense_date=(now - timedelta(days=days_ago)).date(),
                category=category,
                vendor=vendor,
                description=description,
                amount=_money(rng.uniform(15, 250)),
                source=ExpenseSource.manual.value,
            )
        )
        expense_count += 1

    for priority, (pattern, pattern_type, category) in enumerate(DEMO_RULES, start=1):
        db.add(ExpenseCategorizationRule(pattern=pattern, pattern_type=pattern_type, category=category, priority=priority))

    db.flush()
    return {
        "products": len(products),
        "orders": order_count,
        "expenses": expense_count,
        "rules": len(DEMO_RULES),
    }

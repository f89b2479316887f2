"""Turns loosely structured order payloads into one normalized shape.

Payloads arrive from the WooCommerce webhook, from Zapier-style automations
that flatten everything into top-level string fields, and from REST
re-fetches. Field spellings differ between them, so every logical field is
looked up through an ordered alias list with case-insensitive keys.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from storeops.models_sqlalchemy.models import OrderStatus
from storeops.utils.money import to_float, to_int
from storeops.utils.timezones import parse_datetime

ORDER_FIELD_ALIASES: Dict[str, List[str]] = {
    "woo_order_id": ["id", "order_id", "woo_order_id"],
    "order_number": ["number", "order_number", "order number"],
    "status": ["status", "order_status"],
    "total": ["total", "order_total"],
    "shipping_total": ["shipping_total", "shipping_charged", "order_shipping"],
    "discount_total": ["discount_total", "coupon_discount", "cart_discount"],
    "currency": ["currency"],
    "customer_note": ["customer_note", "notes", "note"],
    "date_created": ["date_created_gmt", "date_created", "order_date", "created_at"],
    "billing_first_name": ["billing.first_name", "billing_first_name"],
    "billing_last_name": ["billing.last_name", "billing_last_name"],
    "billing_email": ["billing.email", "billing_email", "customer_email"],
    "coupon_code": ["coupon_code", "coupon_codes", "coupon"],
    "coupon_lines": ["coupon_lines"],
    "line_items": ["line_items", "items"],
}

LINE_FIELD_ALIASES: Dict[str, List[str]] = {
    "id": ["id", "line_item_id", "item_id"],
    "name": ["name", "product_name", "title"],
    "product_id": ["product_id"],
    "variation_id": ["variation_id"],
    "quantity": ["quantity", "qty"],
    "price": ["price", "unit_price"],
    "total": ["total", "line_total"],
    "subtotal": ["subtotal"],
    "sku": ["sku"],
    "meta_data": ["meta_data"],
}

# Zapier-style payloads carry line items as parallel comma-separated fields.
FLATTENED_LINE_ALIASES: Dict[str, List[str]] = {
    "name": ["line_items_name", "line_items_names", "line_item_names", "line_items_product_name"],
    "quantity": ["line_items_quantity", "line_items_quantities", "line_items_qty"],
    "sku": ["line_items_sku", "line_items_skus"],
    "total": ["line_items_total", "line_items_totals"],
    "subtotal": ["line_items_subtotal", "line_items_subtotals"],
    "product_id": ["line_items_product_id", "line_items_product_ids"],
}

LINE_COST_META_KEYS = ["our_cost", "_our_cost", "cost_price", "_cost", "cost", "_wc_cog_item_cost"]


@dataclass
class NormalizedLine:
    position: int
    name: str
    quantity: int
    unit_price: float
    line_item_id: Optional[int] = None
    product_id: Optional[int] = None
    sku: Optional[str] = None
    meta_cost: Optional[float] = None


@dataclass
class NormalizedOrder:
    order_number: Optional[str]
    woo_order_id: Optional[int]
    status: str
    total: Optional[float]
    shipping_total: float
    discount_total: float
    currency: str
    notes: Optional[str]
    order_date: Optional[datetime]
    customer_name: Optional[str]
    customer_email: Optional[str]
    coupon_code: Optional[str]
    lines: List[NormalizedLine] = field(default_factory=list)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _get_ci(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    wanted = key.lower()
    for candidate, value in data.items():
        if isinstance(candidate, str) and candidate.lower() == wanted:
            return value
    return None


def _resolve_path(data: Mapping[str, Any], path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = _get_ci(current, part)
        if current is None:
            return None
    return current


def extract_field(
    payload: Mapping[str, Any],
    name: str,
    aliases: Mapping[str, Sequence[str]] = ORDER_FIELD_ALIASES,
    default: Any = None,
) -> Any:
    """First non-empty value among the aliases registered for ``name``."""
    for alias in aliases[name]:
        value = _resolve_path(payload, alias)
        if not _is_empty(value):
            return value
    return default


def parse_line_items(value: Any) -> List[Dict[str, Any]]:
    """Accepts a list, a single object or a JSON string; malformed input yields []."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (json.JSONDecodeError, ValueError):
            return []
    if isinstance(value, Mapping):
        return [dict(value)]
    if isinstance(value, list):
        return [dict(item) for item in value if isinstance(item, Mapping)]
    return []


def _split_csv_field(value: Any) -> List[str]:
    if _is_empty(value):
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value]
    return [part.strip() for part in str(value).split(",")]


def reconstruct_flattened_lines(payload: Mapping[str, Any]) -> List[Dict[str, Any]]:
    columns = {
        key: _split_csv_field(extract_field(payload, key, FLATTENED_LINE_ALIASES))
        for key in FLATTENED_LINE_ALIASES
    }
    names = columns["name"]
    lines: List[Dict[str, Any]] = []
    for idx, name in enumerate(names):
        if not name:
            continue
        item: Dict[str, Any] = {"name": name}
        for key in ("quantity", "sku", "total", "subtotal", "product_id"):
            values = columns[key]
            if idx < len(values) and values[idx] != "":
                item[key] = values[idx]
        lines.append(item)
    return lines


def _meta_cost(meta: Any) -> Optional[float]:
    if not isinstance(meta, list):
        return None
    by_key = {}
    for entry in meta:
        if isinstance(entry, Mapping) and entry.get("key") not in by_key:
            by_key[entry.get("key")] = entry.get("value")
    for key in LINE_COST_META_KEYS:
        cost = to_float(by_key.get(key), None)
        if cost is not None and cost > 0:
            return cost
    return None


def normalize_line(raw: Mapping[str, Any], position: int) -> Optional[NormalizedLine]:
    name = str(extract_field(raw, "name", LINE_FIELD_ALIASES, "") or "").strip()
    variation_id = to_int(extract_field(raw, "variation_id", LINE_FIELD_ALIASES))
    product_id = variation_id if variation_id and variation_id > 0 else to_int(extract_field(raw, "product_id", LINE_FIELD_ALIASES))
    if not name and not product_id:
        return None

    quantity = to_int(extract_field(raw, "quantity", LINE_FIELD_ALIASES), 1)
    quantity = max(quantity if quantity is not None else 1, 0)

    unit_price = to_float(extract_field(raw, "price", LINE_FIELD_ALIASES), 0.0) or 0.0
    if unit_price <= 0 and quantity > 0:
        total = to_float(extract_field(raw, "total", LINE_FIELD_ALIASES), None)
        if total is None:
            total = to_float(extract_field(raw, "subtotal", LINE_FIELD_ALIASES), 0.0)
        unit_price = (total or 0.0) / quantity

    line_item_id = to_int(extract_field(raw, "id", LINE_FIELD_ALIASES))
    sku = extract_field(raw, "sku", LINE_FIELD_ALIASES)
    return NormalizedLine(
        position=position,
        name=name or f"Product {product_id}",
        quantity=quantity,
        unit_price=round(unit_price, 2),
        line_item_id=line_item_id if line_item_id and line_item_id > 0 else None,
        product_id=product_id if product_id and product_id > 0 else None,
        sku=str(sku).strip() if sku is not None else None,
        meta_cost=_meta_cost(extract_field(raw, "meta_data", LINE_FIELD_ALIASES)),
    )


def format_order_number(raw_number: Any, woo_order_id: Optional[int]) -> Optional[str]:
    """Local convention is ``Order #<n>``; accepts ``123``, ``#123`` or already formatted values."""
    text = "" if _is_empty(raw_number) else str(raw_number).strip()
    if text.lower().startswith("order #"):
        return "Order #" + text[len("order #"):].strip()
    text = text.lstrip("#").strip()
    if not text and woo_order_id:
        text = str(woo_order_id)
    return f"Order #{text}" if text else None


def normalize_status(value: Any) -> str:
    status = str(value or "").strip().lower()
    if status.startswith("wc-"):
        status = status[3:]
    return status or OrderStatus.processing.value


def _coupon_code(payload: Mapping[str, Any]) -> Optional[str]:
    coupon_lines = extract_field(payload, "coupon_lines")
    if isinstance(coupon_lines, list):
        codes = [str(c.get("code")).strip() for c in coupon_lines if isinstance(c, Mapping) and c.get("code")]
        if codes:
            return ", ".join(codes)
    code = extract_field(payload, "coupon_code")
    if isinstance(code, list):
        code = ", ".join(str(c) for c in code if c)
    return str(code).strip() if code else None


def normalize_order_payload(payload: Mapping[str, Any]) -> NormalizedOrder:
    woo_order_id = to_int(extract_field(payload, "woo_order_id"))
    if woo_order_id is not None and woo_order_id <= 0:
        woo_order_id = None

    raw_lines = extract_field(payload, "line_items")
    if raw_lines is not None:
        line_dicts = parse_line_items(raw_lines)
    else:
        line_dicts = reconstruct_flattened_lines(payload)
    lines = [line for line in (normalize_line(raw, idx) for idx, raw in enumerate(line_dicts)) if line]

    first = str(extract_field(payload, "billing_first_name", default="") or "").strip()
    last = str(extract_field(payload, "billing_last_name", default="") or "").strip()
    email = extract_field(payload, "billing_email")

    return NormalizedOrder(
        order_number=format_order_number(extract_field(payload, "order_number"), woo_order_id),
        woo_order_id=woo_order_id,
        status=normalize_status(extract_field(payload, "status")),
        total=to_float(extract_field(payload, "total"), None),
        shipping_total=to_float(extract_field(payload, "shipping_total"), 0.0) or 0.0,
        discount_total=to_float(extract_field(payload, "discount_total"), 0.0) or 0.0,
        currency=str(extract_field(payload, "currency", default="USD")).upper(),
        notes=extract_field(payload, "customer_note"),
        order_date=parse_datetime(extract_field(payload, "date_created")),
        customer_name=f"{first} {last}".strip() or None,
        customer_email=str(email).strip() if email else None,
        coupon_code=_coupon_code(payload),
        lines=lines,
    )

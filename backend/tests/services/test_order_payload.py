import json

from storeops.services.order_payload import (
    extract_field,
    format_order_number,
    normalize_order_payload,
    normalize_status,
    parse_line_items,
    reconstruct_flattened_lines,
)


def test_extract_field_is_case_insensitive_and_ordered():
    payload = {"Order_Total": "12.00", "TOTAL": "15.00"}
    assert extract_field(payload, "total") == "15.00"
    assert extract_field({"Order_Total": "12.00"}, "total") == "12.00"


def test_extract_field_skips_empty_values():
    assert extract_field({"number": "", "order_number": "1001"}, "order_number") == "1001"


def test_extract_field_nested_and_flattened_billing():
    assert extract_field({"billing": {"first_name": "Ann"}}, "billing_first_name") == "Ann"
    assert extract_field({"Billing_First_Name": "Ann"}, "billing_first_name") == "Ann"


def test_parse_line_items_shapes():
    assert parse_line_items([{"name": "A"}, "junk"]) == [{"name": "A"}]
    assert parse_line_items({"name": "A"}) == [{"name": "A"}]
    assert parse_line_items('[{"name": "A"}]') == [{"name": "A"}]
    assert parse_line_items("{not json") == []
    assert parse_line_items(42) == []


def test_reconstruct_flattened_lines():
    payload = {
        "line_items_name": "Energy Boost - 10mg, Focus Enhancer",
        "line_items_quantity": "2, 1",
        "line_items_total": "39.98",
    }
    lines = reconstruct_flattened_lines(payload)
    assert lines == [
        {"name": "Energy Boost - 10mg", "quantity": "2", "total": "39.98"},
        {"name": "Focus Enhancer", "quantity": "1"},
    ]


def test_format_order_number():
    assert format_order_number("1001", None) == "Order #1001"
    assert format_order_number("#1001", None) == "Order #1001"
    assert format_order_number("Order #1001", None) == "Order #1001"
    assert format_order_number(None, 555) == "Order #555"
    assert format_order_number("", None) is None


def test_normalize_status():
    assert normalize_status("wc-Completed") == "completed"
    assert normalize_status(None) == "processing"
    assert normalize_status("backordered") == "backordered"


def test_normalize_full_woocommerce_payload():
    payload = {
        "id": 4521,
        "number": "4521",
        "status": "processing",
        "total": "64.97",
        "shipping_total": "5.00",
        "discount_total": "10.00",
        "currency": "usd",
        "date_created_gmt": "2024-05-01T14:30:00",
        "billing": {"first_name": "Ann", "last_name": "Lee", "email": "ann@example.com"},
        "coupon_lines": [{"code": "SAVE10"}],
        "line_items": [
            {
                "id": 77,
                "name": "Energy Boost - 10mg",
                "product_id": 10,
                "variation_id": 12,
                "quantity": 2,
                "price": 29.985,
                "meta_data": [{"key": "_our_cost", "value": "8.50"}],
            },
            {"name": "Focus Enhancer", "product_id": 20, "variation_id": 0, "quantity": "1", "total": "10.00"},
        ],
    }

    order = normalize_order_payload(payload)

    assert order.order_number == "Order #4521"
    assert order.woo_order_id == 4521
    assert order.total == 64.97
    assert order.shipping_total == 5.0
    assert order.discount_total == 10.0
    assert order.currency == "USD"
    assert order.customer_name == "Ann Lee"
    assert order.customer_email == "ann@example.com"
    assert order.coupon_code == "SAVE10"
    assert order.order_date.year == 2024

    first, second = order.lines
    assert first.product_id == 12
    assert first.line_item_id == 77
    assert first.meta_cost == 8.5
    assert second.product_id == 20
    assert second.unit_price == 10.0
    assert second.line_item_id is None


def test_line_items_json_string_payload():
    payload = {
        "number": "1001",
        "line_items": json.dumps([{"name": "Widget", "quantity": "2", "price": "9.99"}]),
    }
    order = normalize_order_payload(payload)
    assert len(order.lines) == 1
    assert order.lines[0].quantity == 2
    assert order.lines[0].unit_price == 9.99
    assert order.total is None


def test_order_number_never_becomes_platform_id():
    order = normalize_order_payload({"order_number": "#2002"})
    assert order.order_number == "Order #2002"
    assert order.woo_order_id is None


def test_missing_identifiers():
    order = normalize_order_payload({"status": "processing"})
    assert order.order_number is None
    assert order.lines == []

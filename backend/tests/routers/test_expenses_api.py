from storeops.models_sqlalchemy.models import Expense, ExpenseCategorizationRule


def _upload(client, text, filename="statement.csv"):
    return client.post("/expenses/import", files={"file": (filename, text.encode("utf-8"), "text/csv")})


def test_rules_crud(client):
    first = client.post("/expenses/rules", json={"pattern": "SHIPPO", "category": "Shipping"})
    second = client.post("/expenses/rules", json={"pattern": r"^USPS\b", "pattern_type": "regex", "category": "Shipping"})

    assert first.status_code == 201
    assert first.json()["rule"]["priority"] == 1
    assert second.json()["rule"]["priority"] == 2

    rules = client.get("/expenses/rules").json()["rules"]
    assert [r["pattern"] for r in rules] == [r"^USPS\b", "SHIPPO"]

    rule_id = first.json()["rule"]["id"]
    toggled = client.patch("/expenses/rules", json={"id": rule_id, "active": False})
    assert toggled.json()["rule"]["active"] is False

    assert client.delete(f"/expenses/rules?id={rule_id}").json() == {"success": True}
    assert client.delete(f"/expenses/rules?id={rule_id}").status_code == 404
    assert client.delete("/expenses/rules").status_code == 400


def test_rule_validation(client):
    assert client.post("/expenses/rules", json={"pattern": "X"}).status_code == 400
    assert client.post("/expenses/rules", json={"pattern": "(", "pattern_type": "regex", "category": "A"}).status_code == 400
    assert client.patch("/expenses/rules", json={"id": 999, "active": True}).status_code == 404


def test_import_and_approve_flow(client, db):
    db.add(ExpenseCategorizationRule(pattern="SHIPPO", pattern_type="contains", category="Shipping", priority=1))
    db.commit()

    resp = _upload(client, "Date,Merchant Name,Amount\n2024-01-05,SHIPPO INC,-12.50\n2024-01-06,COFFEE,-3.00\n")
    assert resp.status_code == 200
    assert resp.json()["total_lines"] == 2
    assert resp.json()["auto_categorized"] == 1
    import_id = resp.json()["import_id"]

    batch = client.get(f"/expenses/import/{import_id}").json()
    shippo_line, coffee_line = batch["lines"]
    assert shippo_line["amount"] == 12.5
    assert shippo_line["vendor"] == "SHIPPO INC"
    assert shippo_line["category"] == "Shipping"
    assert coffee_line["category"] is None

    approved = client.post(f"/expenses/import/{import_id}/approve", json={"line_ids": "all"})
    assert approved.json()["approved"] == 1
    assert approved.json()["status"] == "partial"

    locked = client.put(f"/expenses/import/{import_id}", json={"line_id": shippo_line["id"], "category": "Other"})
    assert locked.status_code == 409

    client.put(f"/expenses/import/{import_id}", json={"line_id": coffee_line["id"], "category": "Meals"})
    done = client.post(f"/expenses/import/{import_id}/approve", json={"line_ids": [coffee_line["id"]]})
    assert done.json()["status"] == "approved"
    assert db.query(Expense).count() == 2


def test_import_with_missing_columns(client):
    resp = _upload(client, "Description,Vendor\nCoffee,Cafe\n")

    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["headers"] == ["Description", "Vendor"]
    assert "error" in detail


def test_import_without_file(client):
    assert client.post("/expenses/import").status_code == 400


def test_approve_without_categorized_lines(client):
    import_id = _upload(client, "Date,Description,Amount\n2024-01-05,Coffee,3\n").json()["import_id"]
    assert client.post(f"/expenses/import/{import_id}/approve").status_code == 400
    assert client.post("/expenses/import/999/approve").status_code == 404


def test_manual_expenses(client):
    created = client.post("/expenses", json={"amount": 19.999, "description": "Printer ink", "expense_date": "2024-02-02"})
    assert created.status_code == 201
    expense = created.json()["expense"]
    assert expense["amount"] == 20.0
    assert expense["category"] == "Uncategorized"
    assert expense["source"] == "manual"

    assert client.post("/expenses", json={"amount": 0}).status_code == 400

    listed = client.get("/expenses", params={"start": "2024-02-01", "end": "2024-02-28"}).json()["expenses"]
    assert [e["expense_id"] for e in listed] == [expense["expense_id"]]

    assert client.delete(f"/expenses/{expense['expense_id']}").json() == {"success": True}
    assert client.get("/expenses").json()["expenses"] == []


def test_categories(client):
    categories = client.get("/expenses/categories").json()["categories"]
    assert "Shipping" in categories

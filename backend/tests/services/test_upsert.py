import pytest

from storeops.models_sqlalchemy.models import Order
from storeops.services.upsert import PersistenceError, UpsertAttempt, run_upsert_cascade


def _values(**overrides):
    values = {"order_number": "Order #1", "woo_order_id": 1, "status": "processing", "order_total": 10.0}
    values.update(overrides)
    return values


def test_first_attempt_inserts(db):
    attempt = run_upsert_cascade(db, Order, [UpsertAttempt("order_number", ("order_number",), _values())])
    db.commit()

    assert attempt.label == "order_number"
    assert db.query(Order).one().order_total == 10.0


def test_conflict_updates_in_place(db):
    run_upsert_cascade(db, Order, [UpsertAttempt("order_number", ("order_number",), _values())])
    run_upsert_cascade(db, Order, [UpsertAttempt("order_number", ("order_number",), _values(order_total=25.0))])
    db.commit()

    assert db.query(Order).count() == 1
    assert db.query(Order).one().order_total == 25.0


def test_failed_attempt_does_not_poison_transaction(db):
    db.add(Order(order_number="Order #other", woo_order_id=1, status="processing"))
    db.commit()

    attempts = [
        UpsertAttempt("order_number", ("order_number",), _values()),
        UpsertAttempt("woo_order_id", ("woo_order_id",), _values()),
    ]
    used = run_upsert_cascade(db, Order, attempts)
    db.commit()

    assert used.label == "woo_order_id"
    db.expire_all()
    assert db.query(Order).one().order_number == "Order #1"


def test_all_attempts_failing_raises_with_every_message(db):
    attempts = [
        UpsertAttempt("insert", None, {"status": "processing"}),
        UpsertAttempt("insert-again", None, {"status": "processing"}),
    ]
    with pytest.raises(PersistenceError) as excinfo:
        run_upsert_cascade(db, Order, attempts)

    assert len(excinfo.value.attempt_errors) == 2
    assert excinfo.value.attempt_errors[0].startswith("insert:")

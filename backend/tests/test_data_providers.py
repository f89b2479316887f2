import pytest
from fastapi.testclient import TestClient

from storeops.config import Settings
from storeops.data_providers import DemoDataProvider, PostgresDataProvider, build_data_provider
from storeops.main import create_app
from storeops.models_sqlalchemy.models import (
    Expense,
    ExpenseCategorizationRule,
    Order,
    OrderLine,
    Product,
    ProductCostLookup,
)


def test_build_data_provider_selects_by_setting():
    assert isinstance(build_data_provider(Settings(DATA_PROVIDER="demo")), DemoDataProvider)
    assert isinstance(
        build_data_provider(Settings(DATA_PROVIDER="postgres", DATABASE_URL="postgresql://u:p@localhost/db")),
        PostgresDataProvider,
    )
    with pytest.raises(RuntimeError):
        build_data_provider(Settings(DATA_PROVIDER="mongo"))


def test_postgres_provider_requires_url():
    with pytest.raises(RuntimeError):
        PostgresDataProvider("")


def test_demo_provider_is_seeded_and_consistent():
    provider = DemoDataProvider(seed=7)
    db = provider.session()
    try:
        assert db.query(Order).count() > 0
        assert db.query(OrderLine).count() > 0
        assert db.query(ProductCostLookup).count() > 0
        assert db.query(Expense).count() > 0
        assert db.query(ExpenseCategorizationRule).count() > 0
        for product in db.query(Product).all():
            assert product.current_stock >= 0
            assert product.current_stock == max(0, product.starting_qty - product.qty_sold)
    finally:
        db.close()
        provider.dispose()


def test_demo_seed_is_deterministic():
    totals = []
    for _ in range(2):
        provider = DemoDataProvider(seed=11)
        db = provider.session()
        totals.append(sorted((o.order_number, o.order_total) for o in db.query(Order).all()))
        db.close()
        provider.dispose()
    assert totals[0] == totals[1]


def test_health_reports_provider():
    provider = DemoDataProvider(seed_data=False)
    with TestClient(create_app(provider)) as client:
        assert client.get("/health").json() == {"status": "ok", "data_provider": "demo"}

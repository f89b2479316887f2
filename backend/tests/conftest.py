import pytest
from fastapi.testclient import TestClient

from storeops.config import settings
from storeops.data_providers import DemoDataProvider
from storeops.main import create_app

TEST_API_KEY = "test-webhook-key-1234"


@pytest.fixture
def provider():
    p = DemoDataProvider(seed_data=False)
    yield p
    p.dispose()


@pytest.fixture
def db(provider):
    session = provider.session()
    yield session
    session.close()


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_API_KEY", TEST_API_KEY)
    monkeypatch.setattr(settings, "ALLOW_INSECURE_WEBHOOKS", False)
    return TEST_API_KEY


@pytest.fixture
def app(provider, api_key):
    return create_app(provider)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(api_key):
    return {"x-api-key": api_key}

import httpx
import pytest

from storeops.services.shippo_client import ShippoClient, ShippoError
from storeops.services.woocommerce_client import WooCommerceClient, WooCommerceError
from storeops.utils.logger import IntegrationCallLogger, integration_log


@pytest.fixture(autouse=True)
def clear_integration_log():
    integration_log.clear()
    yield
    integration_log.clear()


def _shippo(handler, retries=2):
    return ShippoClient("shippo_test_token_abcdef", transport=httpx.MockTransport(handler), max_retries=retries, retry_base_delay=0)


@pytest.mark.asyncio
async def test_shippo_sends_token_header():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"object_id": "tx_1", "rate": {"amount": "5.00"}})

    data = await _shippo(handler).get_transaction("tx_1")

    assert data["object_id"] == "tx_1"
    assert seen["auth"] == "ShippoToken shippo_test_token_abcdef"
    assert seen["url"] == "https://api.goshippo.com/transactions/tx_1"


@pytest.mark.asyncio
async def test_retries_server_errors_then_succeeds():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json={"results": [], "next": None})

    data = await _shippo(handler).list_invoices()

    assert data == {"results": [], "next": None}
    assert len(calls) == 3
    assert calls[0].url.params["status"] == "PAID"


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, json={"detail": "Not found"})

    with pytest.raises(ShippoError) as excinfo:
        await _shippo(handler).get_rate("rate_x")

    assert excinfo.value.status_code == 404
    assert excinfo.value.response_body == {"detail": "Not found"}
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_network_errors_exhaust_retries():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ShippoError):
        await _shippo(handler, retries=1).get_order("so_1")

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_next_page_urls_are_used_verbatim():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json={"results": []})

    await _shippo(handler).list_orders_next("https://api.goshippo.com/orders/?page=2&results=100")

    assert seen == ["https://api.goshippo.com/orders/?page=2&results=100"]


@pytest.mark.asyncio
async def test_woocommerce_passes_keys_and_paginates_until_short_page():
    pages = []

    def handler(request):
        params = request.url.params
        assert params["consumer_key"] == "ck_live_123456789"
        assert params["consumer_secret"] == "cs_live_987654321"
        page = int(params["page"])
        pages.append(page)
        size = 2 if page == 1 else 1
        return httpx.Response(200, json=[{"id": page * 10 + i} for i in range(size)])

    client = WooCommerceClient(
        "https://shop.example.com/",
        "ck_live_123456789",
        "cs_live_987654321",
        transport=httpx.MockTransport(handler),
        retry_base_delay=0,
    )

    products = [p async for p in client.iter_products(per_page=2)]

    assert [p["id"] for p in products] == [10, 11, 20]
    assert pages == [1, 2]


@pytest.mark.asyncio
async def test_woocommerce_error_status():
    client = WooCommerceClient(
        "https://shop.example.com",
        "ck",
        "cs",
        transport=httpx.MockTransport(lambda request: httpx.Response(401, text="unauthorized")),
        retry_base_delay=0,
    )

    with pytest.raises(WooCommerceError) as excinfo:
        await client.get_order(1)

    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_integration_log_masks_credentials():
    client = WooCommerceClient(
        "https://shop.example.com",
        "ck_live_123456789",
        "short",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"id": 1})),
        retry_base_delay=0,
    )

    await client.get_product(1)

    entry = integration_log.get_entries(provider="woocommerce")[-1]
    assert entry["status_code"] == 200
    assert entry["params"]["consumer_key"] == "ck_l...6789"
    assert entry["params"]["consumer_secret"] == "***"


def test_integration_log_is_bounded():
    log = IntegrationCallLogger(max_entries=2)
    for i in range(3):
        log.record("shippo", "GET", f"https://example.com/{i}", 200)
    assert [e["url"] for e in log.get_entries()] == ["https://example.com/1", "https://example.com/2"]
    assert len(log.get_entries(limit=1)) == 1

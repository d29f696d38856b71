# tests/unit/integrations/platforms/test_catalog_adapter.py
import json

import httpx
import pytest

from watchsync.core.exceptions import PermanentChannelError, TransientChannelError
from watchsync.integrations.platforms.catalog import CatalogAdapter, remote_status
from watchsync.services.reconciliation.types import RemoteListingRef

from tests.mocks.mock_channel import item


class Api:
    """Routes requests to canned responses keyed by (method, path)."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request):
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, dict(request.url.params), body))
        key = (request.method, request.url.path)
        reply = self.routes[key]
        if isinstance(reply, list):
            reply = reply.pop(0)
        status, payload = reply
        return httpx.Response(status, json=payload)


def adapter_for(api):
    client = httpx.AsyncClient(transport=httpx.MockTransport(api))
    return CatalogAdapter("https://catalog.test/api", api_key="key-1", client=client)


@pytest.mark.parametrize("product,expected", [
    ({"status": "approved", "inventory": {"status": "Active"}}, "active"),
    ({"status": "Approved", "inventory": {"status": "Inactive"}}, "approved"),
    ({"status": "approved"}, "approved"),
    ({"status": "pending", "inventory": {"status": "Active"}}, "pending"),
    ({"status": "Rejected"}, "rejected"),
    ({}, ""),
])
def test_remote_status(product, expected):
    assert remote_status(product) == expected


@pytest.mark.asyncio
async def test_create_posts_product_with_inventory():
    api = Api({("POST", "/api/products"): (201, {"id": 4411})})
    adapter = adapter_for(api)

    remote_id = await adapter.create(item(
        "100200", web_price_wholesale="8200", web_price_sale="9500",
        web_description_short="Tudor Black Bay", web_designer="Tudor",
    ))

    assert remote_id == "4411"
    _, _, _, body = api.requests[0]
    assert body["vendor"] == {"sku": "100200"}
    assert body["product"]["name"] == "Tudor Black Bay"
    assert body["product"]["brand"] == "Tudor"
    assert body["inventory"] == {"status": "Active", "quantity": 1, "price": 8200.0}


@pytest.mark.asyncio
async def test_create_without_id_is_permanent():
    api = Api({("POST", "/api/products"): (200, {})})

    with pytest.raises(PermanentChannelError):
        await adapter_for(api).create(item("100200"))


@pytest.mark.asyncio
async def test_create_rejected_by_validation():
    api = Api({("POST", "/api/products"): (422, {"errors": ["model is required"]})})

    with pytest.raises(PermanentChannelError) as exc_info:
        await adapter_for(api).create(item("100200"))

    assert "model is required" in str(exc_info.value)


@pytest.mark.asyncio
async def test_update_puts_product_then_inventory():
    api = Api({
        ("PUT", "/api/products/4411"): (200, {"id": 4411}),
        ("PUT", "/api/products/4411/inventory"): (200, {}),
    })

    await adapter_for(api).update("4411", {"web_tag_number": "100200", "web_price_sale": "9000"})

    assert [(r[0], r[1]) for r in api.requests] == [
        ("PUT", "/api/products/4411"),
        ("PUT", "/api/products/4411/inventory"),
    ]
    assert api.requests[1][3]["inventory"]["price"] == 9000.0


@pytest.mark.asyncio
async def test_update_reads_sku_from_configured_field():
    api = Api({
        ("PUT", "/api/products/4411"): (200, {"id": 4411}),
        ("PUT", "/api/products/4411/inventory"): (200, {}),
    })
    client = httpx.AsyncClient(transport=httpx.MockTransport(api))
    adapter = CatalogAdapter("https://catalog.test/api", api_key="key-1", sku_field="stock_no", client=client)

    await adapter.update("4411", {"stock_no": "A-77", "web_tag_number": "wrong"})

    assert api.requests[0][3]["vendor"] == {"sku": "A-77"}


@pytest.mark.asyncio
async def test_deactivate_and_reactivate_toggle_inventory():
    api = Api({("PUT", "/api/products/4411/inventory"): (200, {})})
    adapter = adapter_for(api)

    await adapter.deactivate("4411")
    await adapter.reactivate("4411", {"web_price_wholesale": "7000"})

    assert api.requests[0][3] == {"inventory": {"status": "Inactive", "quantity": 0}}
    assert api.requests[1][3] == {"inventory": {"status": "Active", "quantity": 1, "price": 7000.0}}


@pytest.mark.asyncio
async def test_server_error_is_transient():
    api = Api({("PUT", "/api/products/4411/inventory"): (503, {"error": "maintenance"})})

    with pytest.raises(TransientChannelError):
        await adapter_for(api).deactivate("4411")


@pytest.mark.asyncio
async def test_list_remote_reads_every_page():
    api = Api({("GET", "/api/products"): [
        (200, {"pages": 2, "products": [
            {"id": 1, "status": "approved", "vendor": {"sku": "A"}, "inventory": {"status": "Active"}},
            {"id": 2, "status": "approved", "vendor": {"sku": "B"}, "inventory": {"status": "Inactive"}},
        ]}),
        (200, {"pages": 2, "products": [
            {"id": 3, "status": "pending", "vendor": {}},
        ]}),
    ]})
    adapter = adapter_for(api)

    refs = await adapter.list_remote()

    assert refs == [
        RemoteListingRef(remote_id="1", sku="A", remote_status="active"),
        RemoteListingRef(remote_id="2", sku="B", remote_status="approved"),
        RemoteListingRef(remote_id="3", sku=None, remote_status="pending"),
    ]
    assert [r[2] for r in api.requests] == [{}, {"page": "2"}]
    assert adapter.status_policy.is_remote_accepting(refs[1])


@pytest.mark.asyncio
async def test_headers_carry_key_and_user_agent():
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json={"pages": 1, "products": []})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    refs = await CatalogAdapter("https://catalog.test/api", api_key="key-1", client=client).list_remote()

    assert refs == []
    assert seen["authorization"] == "Bearer key-1"
    assert seen["user-agent"] == "watchsync"

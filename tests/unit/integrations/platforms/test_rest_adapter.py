# tests/unit/integrations/platforms/test_rest_adapter.py
import httpx
import pytest

from watchsync.core.exceptions import (
    AlreadyConvergedError,
    PermanentChannelError,
    TransientChannelError,
)
from watchsync.integrations.platforms.rest import HttpChannelAdapter

from tests.mocks.mock_channel import item


class DemoAdapter(HttpChannelAdapter):
    channel_id = "DEMO"
    already_converged_markers = ("already ended",)
    transient_markers = ("try again in 30 seconds",)

    async def create(self, item):
        return self._json(await self._make_request("POST", "/items", data={"sku": item.sku}))["id"]

    async def update(self, remote_id, attributes):
        await self._make_request("PUT", f"/items/{remote_id}", data=dict(attributes))

    async def deactivate(self, remote_id):
        await self._make_request("DELETE", f"/items/{remote_id}")

    async def reactivate(self, remote_id, attributes):
        await self._make_request("POST", f"/items/{remote_id}/activate")


def adapter_with(handler, api_key="secret-key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DemoAdapter("https://demo.test/api/", api_key=api_key, client=client)


"""
1. Request building
"""

@pytest.mark.asyncio
async def test_request_uses_base_url_and_bearer_header():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"ok": True})

    adapter = adapter_with(handler)
    response = await adapter._make_request("GET", "/items", params={"page": 2})

    assert seen["url"] == "https://demo.test/api/items?page=2"
    assert seen["auth"] == "Bearer secret-key"
    assert response.json() == {"ok": True}
    await adapter.aclose()


@pytest.mark.asyncio
async def test_no_authorization_header_without_key():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(204)

    adapter = adapter_with(handler, api_key="")
    response = await adapter._make_request("DELETE", "/items/1")

    assert seen["auth"] is None
    assert DemoAdapter._json(response) == {}


@pytest.mark.asyncio
async def test_request_without_injected_client(mocker):
    mock_client = mocker.patch("httpx.AsyncClient")
    mock_response = httpx.Response(200, json={"id": 5}, request=httpx.Request("POST", "https://demo.test"))
    mock_client.return_value.__aenter__.return_value.request = mocker.AsyncMock(return_value=mock_response)

    adapter = DemoAdapter("https://demo.test/api", api_key="k")
    result = await adapter._make_request("POST", "/items", data={"sku": "A"})

    assert result is mock_response
    _, kwargs = mock_client.return_value.__aenter__.return_value.request.call_args
    assert kwargs["json"] == {"sku": "A"}
    assert kwargs["headers"]["Authorization"] == "Bearer k"


"""
2. Error classification
"""

@pytest.mark.asyncio
@pytest.mark.parametrize("status", [408, 425, 429, 500, 502, 503])
async def test_retryable_statuses_are_transient(status):
    adapter = adapter_with(lambda request: httpx.Response(status, text="busy"))

    with pytest.raises(TransientChannelError):
        await adapter.deactivate("1")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
async def test_client_errors_are_permanent(status):
    adapter = adapter_with(lambda request: httpx.Response(status, json={"error": "Invalid price"}))

    with pytest.raises(PermanentChannelError) as exc_info:
        await adapter.update("1", {"price": -1})

    assert f"HTTP {status}" in str(exc_info.value)


@pytest.mark.asyncio
async def test_converged_marker_wins_over_status():
    adapter = adapter_with(lambda request: httpx.Response(400, text="Listing ALREADY ENDED by seller"))

    with pytest.raises(AlreadyConvergedError):
        await adapter.deactivate("1")


@pytest.mark.asyncio
async def test_transient_marker_on_client_error():
    adapter = adapter_with(lambda request: httpx.Response(400, text="Please try again in 30 seconds."))

    with pytest.raises(TransientChannelError):
        await adapter.reactivate("1", {})


@pytest.mark.asyncio
async def test_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(TransientChannelError) as exc_info:
        await adapter_with(handler).deactivate("1")

    assert "timed out" in str(exc_info.value)


@pytest.mark.asyncio
async def test_connection_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientChannelError):
        await adapter_with(handler).deactivate("1")


@pytest.mark.asyncio
async def test_non_json_success_body_is_permanent():
    adapter = adapter_with(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(PermanentChannelError):
        await adapter.create(item("A"))

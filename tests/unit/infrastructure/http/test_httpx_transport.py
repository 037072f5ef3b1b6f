import json

import httpx
import pytest

from apirelay.domain.exceptions import TransportError
from apirelay.domain.models.request import OutboundRequest
from apirelay.infrastructure.http.httpx_transport import HttpxTransport

BASE_URL = "https://api.example.com/v1"


def make_transport(handler):
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpxTransport(base_url=BASE_URL, client=client)


@pytest.mark.asyncio
async def test_get_sends_parameters_as_query():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"items": ["boot"]})

    transport = make_transport(handler)
    request = OutboundRequest(
        operation_name="getProducts", method="GET", url="/products",
        headers={"Authorization": "Bearer t"}, parameters={"category": "shoes"},
    )

    response = await transport.send(request)

    assert seen["url"] == "https://api.example.com/v1/products?category=shoes"
    assert seen["auth"] == "Bearer t"
    assert response.status_code == 200
    assert response.body == {"items": ["boot"]}
    assert response.latency_ms is not None


@pytest.mark.asyncio
async def test_post_sends_parameters_as_json_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": 7})

    transport = make_transport(handler)
    response = await transport.send(
        OutboundRequest(operation_name="createOrder", method="POST", url="/orders", parameters={"sku": "A1"})
    )

    assert seen["body"] == {"sku": "A1"}
    assert response.is_success


@pytest.mark.asyncio
async def test_explicit_body_keeps_parameters_in_query():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["query"] = dict(request.url.params)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={})

    transport = make_transport(handler)
    await transport.send(OutboundRequest(
        operation_name="createOrder", method="POST", url="/orders", parameters={"dry_run": "true"}, body={"sku": "A1"},
    ))

    assert seen == {"query": {"dry_run": "true"}, "body": {"sku": "A1"}}


@pytest.mark.asyncio
async def test_validation_rejection_fields_are_parsed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"detail": [
            {"loc": ["query", "category"], "type": "missing"},
            {"loc": ["query", "limit"], "type": "int_parsing"},
        ]})

    response = await make_transport(handler).send(OutboundRequest(operation_name="getProducts", method="GET", url="/products"))

    assert response.is_validation_rejection
    assert response.missing_fields == ("category",)
    assert response.invalid_fields == ("limit",)


@pytest.mark.asyncio
async def test_rate_rejection_retry_after_is_parsed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "3"}, text="slow down")

    response = await make_transport(handler).send(OutboundRequest(operation_name="op", method="GET", url="/op"))

    assert response.is_rate_rejection
    assert response.retry_after_ms == 3000
    assert response.body == "slow down"


@pytest.mark.asyncio
async def test_network_error_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError, match="connection refused"):
        await make_transport(handler).send(OutboundRequest(operation_name="op", method="GET", url="/op"))


@pytest.mark.asyncio
async def test_timeout_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(TransportError, match="Timed out"):
        await make_transport(handler).send(OutboundRequest(operation_name="op", method="GET", url="/op"))


@pytest.mark.asyncio
async def test_injected_client_is_not_closed():
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(lambda r: httpx.Response(204)))
    transport = HttpxTransport(base_url=BASE_URL, client=client)

    await transport.aclose()

    assert not client.is_closed
    await client.aclose()


def test_base_url_required_without_client():
    with pytest.raises(ValueError):
        HttpxTransport(base_url="")

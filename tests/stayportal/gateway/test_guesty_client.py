"""Tests for the Guesty Open API client against a stubbed transport."""

import json

import httpx
import pytest

from stayportal.gateway.cache import MemoryCache
from stayportal.gateway.config import Settings
from stayportal.gateway.guesty import AccessTokenProvider, GuestyAPIError, GuestyClient

RAW_RESERVATION = {
    "_id": "res-1",
    "confirmationCode": "HA-ABC123",
    "guest": {"fullName": "Ada Guest", "email": "ada@example.com"},
    "checkIn": "2025-07-04T22:00:00.000Z",
    "checkOut": "2025-07-08T17:00:00.000Z",
    "status": "confirmed",
    "listingId": "listing-1",
    "listing": {"defaultCheckInTime": "16:00"},
    "money": {"totalPaid": 900, "balanceDue": 100, "currency": "USD"},
}


class GuestyStub:
    def __init__(self, routes: dict[tuple[str, str], httpx.Response]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.routes.get((request.method, request.url.path), httpx.Response(404, json={"error": "not found"}))


def _client(stub: GuestyStub, **overrides) -> GuestyClient:
    settings = Settings(guesty_access_token="manual-token", guesty_api_url="https://guesty.test/v1", **overrides)
    http = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    return GuestyClient(settings, AccessTokenProvider(settings, MemoryCache(), http), http)


@pytest.mark.asyncio
async def test_confirmation_code_search():
    stub = GuestyStub({("GET", "/v1/reservations"): httpx.Response(200, json={"results": [RAW_RESERVATION]})})

    reservation = await _client(stub).get_reservation_by_confirmation_code("HA-ABC123")

    assert reservation.id == "res-1"
    assert reservation.guest_name == "Ada Guest"
    assert reservation.check_in_time == "16:00"
    assert reservation.money.balance_due == 100
    request = stub.requests[0]
    assert request.headers["authorization"] == "Bearer manual-token"
    assert json.loads(request.url.params["filters"]) == [
        {"operator": "$in", "field": "confirmationCode", "value": ["HA-ABC123"]}
    ]


@pytest.mark.asyncio
async def test_confirmation_code_search_without_match():
    stub = GuestyStub({("GET", "/v1/reservations"): httpx.Response(200, json={"results": []})})

    assert await _client(stub).get_reservation_by_confirmation_code("NOPE") is None


@pytest.mark.asyncio
async def test_point_lookups_map_404_to_none():
    client = _client(GuestyStub({}))

    assert await client.get_reservation("res-missing") is None
    assert await client.get_listing("listing-missing") is None


@pytest.mark.asyncio
async def test_other_errors_raise_with_body():
    stub = GuestyStub({("GET", "/v1/reservations/res-1"): httpx.Response(500, text="kaboom")})

    with pytest.raises(GuestyAPIError) as exc_info:
        await _client(stub).get_reservation("res-1")

    assert exc_info.value.status_code == 500
    assert exc_info.value.body == "kaboom"


@pytest.mark.asyncio
async def test_payments_normalize_status():
    stub = GuestyStub(
        {
            ("GET", "/v1/reservations/res-1/payments"): httpx.Response(
                200, json={"results": [{"_id": "pay-1", "amount": 450, "status": "succeeded", "createdAt": "2025-05-01"}]}
            )
        }
    )

    payments = await _client(stub).get_payments("res-1")

    assert [(p.id, p.status) for p in payments] == [("pay-1", "paid")]


@pytest.mark.asyncio
async def test_set_portal_code_writes_custom_field():
    stub = GuestyStub({("PUT", "/v1/reservations/res-1/custom-fields"): httpx.Response(200, json={})})

    await _client(stub, guesty_portal_code_field_id="field-portal").set_portal_code("res-1", "ABCDEF")

    assert json.loads(stub.requests[0].content) == {"customFields": [{"fieldId": "field-portal", "value": "ABCDEF"}]}


@pytest.mark.asyncio
async def test_set_portal_code_requires_field_id():
    stub = GuestyStub({})

    with pytest.raises(GuestyAPIError):
        await _client(stub, guesty_portal_code_field_id=None).set_portal_code("res-1", "ABCDEF")

    assert stub.requests == []


@pytest.mark.asyncio
async def test_transport_errors_raise_guesty_api_error():
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    settings = Settings(guesty_access_token="manual-token", guesty_api_url="https://guesty.test/v1")
    http = httpx.AsyncClient(transport=httpx.MockTransport(timeout))
    client = GuestyClient(settings, AccessTokenProvider(settings, MemoryCache(), http), http)

    with pytest.raises(GuestyAPIError) as exc_info:
        await client.get_reservation("res-1")

    assert exc_info.value.status_code == 0
    assert "timed out" in exc_info.value.body

import asyncio

import httpx
import pytest

from bookflow.client import APIError, BookstoreClient, create_client, unwrap
from bookflow.models import BorrowRecord, DeliveryAssignment, FineRecord, ReturnRecord


def make_client(handler, token="secret"):
    return BookstoreClient("https://bookstore.test/api/", token=token, transport=httpx.MockTransport(handler))


def run(coro):
    return asyncio.run(coro)


def test_unwrap_envelopes():
    item = {"id": 1}
    assert unwrap([item]) == [item]
    assert unwrap({"success": True, "data": [item]}) == [item]
    assert unwrap({"data": {"results": [item]}}) == [item]
    assert unwrap({"results": [item, "junk"]}) == [item]
    assert unwrap({"success": True, "data": item}) == [item]
    assert unwrap("nonsense") == []
    with pytest.raises(APIError, match="Nope"):
        unwrap({"success": False, "message": "Nope"})


def test_get_borrowings_sends_filters_and_auth(borrow_payload):
    seen = {}

    def handler(request):
        seen["url"] = request.url
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"success": True, "data": [borrow_payload]})

    async def go():
        async with make_client(handler) as client:
            return await client.get_borrowings(status="active", search="dune")

    records = run(go())
    assert seen["url"].path == "/api/borrow/requests/all/"
    assert seen["url"].params["status"] == "active"
    assert seen["url"].params["search"] == "dune"
    assert seen["auth"] == "Bearer secret"
    assert len(records) == 1
    assert isinstance(records[0], BorrowRecord)
    assert records[0].id == "41"


def test_get_return_requests_and_deliveries(return_payload, delivery_payload):
    def handler(request):
        if request.url.path.endswith("/returns/requests/"):
            return httpx.Response(200, json={"results": [return_payload]})
        return httpx.Response(200, json=[delivery_payload])

    async def go():
        async with make_client(handler, token=None) as client:
            return await client.get_return_requests(), await client.get_deliveries()

    returns, deliveries = run(go())
    assert isinstance(returns[0], ReturnRecord)
    assert isinstance(deliveries[0], DeliveryAssignment)
    assert deliveries[0].tracking_number == "TRK-501"


def test_get_fines():
    def handler(request):
        assert request.url.path == "/api/borrowing/fines/my-fines/"
        return httpx.Response(
            200,
            json={"success": True, "data": [{"id": 3, "borrow_request_id": 41, "fine_amount": 2.5, "fine_status": "unpaid"}]},
        )

    async def go():
        async with make_client(handler) as client:
            return await client.get_fines()

    fines = run(go())
    assert isinstance(fines[0], FineRecord)
    assert fines[0].amount == 2.5
    assert fines[0].owner_record_id == "41"


def test_http_errors_propagate():
    def handler(request):
        return httpx.Response(401, json={"detail": "expired"})

    async def go():
        async with make_client(handler) as client:
            await client.get_deliveries()

    with pytest.raises(httpx.HTTPStatusError):
        run(go())


def test_backend_failure_envelope():
    def handler(request):
        return httpx.Response(200, json={"success": False, "message": "Not allowed"})

    async def go():
        async with make_client(handler) as client:
            await client.get_return_requests()

    with pytest.raises(APIError, match="Not allowed"):
        run(go())


def test_create_client_from_env(monkeypatch):
    monkeypatch.setenv("BOOKSTORE_API_URL", "https://bookstore.test/api")
    monkeypatch.setenv("BOOKSTORE_API_TOKEN", "tok")
    monkeypatch.setenv("BOOKSTORE_TIMEOUT", "5")
    client = create_client()
    assert client.base_url == "https://bookstore.test/api"
    assert client.token == "tok"
    assert client.timeout == 5.0


def test_create_client_requires_url(monkeypatch):
    monkeypatch.delenv("BOOKSTORE_API_URL", raising=False)
    monkeypatch.setattr("dotenv.load_dotenv", lambda *a, **k: False)
    with pytest.raises(ValueError):
        create_client()

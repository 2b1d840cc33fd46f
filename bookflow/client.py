"""Bookstore backend client - fetches raw payloads and assembles records."""

import os

import httpx

from bookflow.models import BorrowRecord, DeliveryAssignment, FineRecord, ReturnRecord
from bookflow.observe import Observer
from bookflow.parser import assemble_borrow, assemble_delivery, assemble_fine, assemble_return

BORROWINGS_PATH = "/borrow/requests/all/"
RETURNS_PATH = "/returns/requests/"
DELIVERIES_PATH = "/delivery/delivery-requests/"
FINES_PATH = "/borrowing/fines/my-fines/"


class APIError(Exception):
    """The backend answered with ``success: false``."""


def unwrap(data) -> list[dict]:
    """Extract the item list from the backend's response envelopes.

    Seen shapes: a bare list, ``{"success": true, "data": [...]}``,
    ``{"data": {"results": [...]}}`` and ``{"results": [...]}``.
    """
    if isinstance(data, dict):
        if data.get("success") is False:
            raise APIError(data.get("message") or data.get("error") or "Request failed")
        if "data" in data:
            data = data["data"]
        if isinstance(data, dict):
            data = data.get("results", data.get("items", [data]))
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


class BookstoreClient:
    """Client for the bookstore backend's borrowing, returns and delivery APIs."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        observer: Observer | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.observer = observer
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Clean up resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                follow_redirects=True,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def _get_items(self, path: str, params: dict | None = None) -> list[dict]:
        resp = await self.http_client.get(path, params=params)
        resp.raise_for_status()
        return unwrap(resp.json())

    async def get_borrowings(self, status: str | None = None, search: str | None = None) -> list[BorrowRecord]:
        """Get borrow requests, optionally filtered by backend status or search text."""
        params = {}
        if status:
            params["status"] = status
        if search:
            params["search"] = search
        items = await self._get_items(BORROWINGS_PATH, params or None)
        return [assemble_borrow(item, self.observer) for item in items]

    async def get_return_requests(self) -> list[ReturnRecord]:
        """Get return requests."""
        items = await self._get_items(RETURNS_PATH)
        return [assemble_return(item, self.observer) for item in items]

    async def get_deliveries(self) -> list[DeliveryAssignment]:
        """Get unified delivery requests."""
        items = await self._get_items(DELIVERIES_PATH)
        return [assemble_delivery(item, self.observer) for item in items]

    async def get_fines(self) -> list[FineRecord]:
        """Get the current customer's fines."""
        items = await self._get_items(FINES_PATH)
        return [assemble_fine(item, self.observer) for item in items]


def create_client(
    base_url: str | None = None,
    token: str | None = None,
    timeout: float | None = None,
    observer: Observer | None = None,
) -> BookstoreClient:
    """Create a client, reading settings from the environment if not provided."""
    from dotenv import load_dotenv

    load_dotenv()

    base_url = base_url or os.getenv("BOOKSTORE_API_URL")
    token = token or os.getenv("BOOKSTORE_API_TOKEN")
    if timeout is None:
        timeout = float(os.getenv("BOOKSTORE_TIMEOUT", "30"))

    if not base_url:
        raise ValueError("BOOKSTORE_API_URL must be set")

    return BookstoreClient(base_url, token=token, timeout=timeout, observer=observer)

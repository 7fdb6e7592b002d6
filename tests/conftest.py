"""
Data client tests - shared fixtures.

Provides a controllable clock, an in-memory key/value store, the cache and
token objects built on it, and a fake shop backend served through
``httpx.MockTransport`` so the gateway runs its real request path.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from ecotec_client.api_client import AuthGateway
from ecotec_client.cache.persistent_cache import PersistentCache, SessionDataStore
from ecotec_client.cache.storage import InMemoryStore
from ecotec_client.events import LogoutEvent, LogoutNotifier
from ecotec_client.token_store import TokenStore

BASE_URL = "http://api.test/api/v1"

SHOP_1 = {"id": "shop-1", "name": "Main Street", "slug": "main-street"}
SHOP_2 = {"id": "shop-2", "name": "Harbour", "slug": "harbour"}

ADMIN_USER = {
    "id": "user-1",
    "email": "admin@example.com",
    "name": "Shop Admin",
    "role": "ADMIN",
    "shop": SHOP_1,
}

SUPER_ADMIN_USER = {
    "id": "user-9",
    "email": "root@example.com",
    "name": "Platform Owner",
    "role": "SUPER_ADMIN",
    "shop": SHOP_1,
}


class FakeClock:
    """Wall clock in epoch seconds that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """
    Minimal shop backend.

    Protected routes accept only ``Bearer <valid_token>``. The refresh route
    answers with the next queued status (200 when the queue is empty) and
    can be held open with ``refresh_gate`` so concurrent callers pile up.
    Paths in ``drop_after_refresh`` lose the connection once called with the
    renewed token.
    """

    def __init__(self) -> None:
        self.valid_token = "T2"
        self.next_refresh_token = "R2"
        self.refresh_statuses: List[int] = []
        self.refresh_gate: Optional[asyncio.Event] = None
        self.refresh_user: Optional[Dict[str, Any]] = ADMIN_USER
        self.refresh_calls = 0
        self.login_status = 200
        self.always_unauthorized: List[str] = []
        self.collections: Dict[str, List[Dict[str, Any]]] = {}
        self.transport_error: Optional[Callable[[httpx.Request], Exception]] = None
        self.refresh_path = "/auth/refresh"
        self.login_path = "/auth/login"
        self.drop_after_refresh: List[str] = []
        self.requests: List[httpx.Request] = []

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(path)]

    def _auth_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "accessToken": self.valid_token,
            "refreshToken": self.next_refresh_token,
        }
        if self.refresh_user is not None:
            data["user"] = self.refresh_user
        return {"success": True, "data": data}

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if self.transport_error is not None:
            raise self.transport_error(request)

        if path.endswith(self.refresh_path):
            self.refresh_calls += 1
            if self.refresh_gate is not None:
                await self.refresh_gate.wait()
            status = self.refresh_statuses.pop(0) if self.refresh_statuses else 200
            if status != 200:
                return httpx.Response(
                    status, json={"success": False, "message": "Invalid refresh token"}
                )
            return httpx.Response(200, json=self._auth_payload())

        if path.endswith(self.login_path) or path.endswith("/auth/register"):
            if self.login_status != 200:
                return httpx.Response(
                    self.login_status,
                    json={"success": False, "message": "Invalid credentials"},
                )
            return httpx.Response(200, json=self._auth_payload())

        authorization = request.headers.get("Authorization")
        if authorization == f"Bearer {self.valid_token}" and any(
            path.endswith(p) for p in self.drop_after_refresh
        ):
            raise httpx.ConnectError("Connection reset by peer", request=request)

        if authorization != f"Bearer {self.valid_token}" or any(
            path.endswith(p) for p in self.always_unauthorized
        ):
            return httpx.Response(401, json={"success": False, "message": "Token expired"})

        if path.endswith("/auth/logout") or path.endswith("/auth/logout-all"):
            return httpx.Response(200, json={"success": True})

        if path.endswith("/auth/me"):
            return httpx.Response(200, json={"success": True, "data": {"user": ADMIN_USER}})

        for resource, records in self.collections.items():
            if path.endswith(resource):
                return httpx.Response(
                    200,
                    json={
                        "success": True,
                        "data": records,
                        "pagination": {
                            "page": 1,
                            "limit": 1000,
                            "total": len(records),
                            "totalPages": 1,
                        },
                    },
                )
            if f"{resource}/" in path:
                record_id = path.rsplit("/", 1)[-1]
                for record in records:
                    if record["id"] == record_id:
                        return httpx.Response(200, json={"success": True, "data": record})
                return httpx.Response(404, json={"success": False, "message": "Not found"})

        if request.method == "POST":
            return httpx.Response(201, json={"success": True, "data": {}})
        return httpx.Response(200, json={"success": True, "data": None})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def persistent_cache(store: InMemoryStore, clock: FakeClock) -> PersistentCache:
    """Persistent cache at data version 1 over the in-memory store."""
    return PersistentCache(store, prefix="test_cache_", version=1, clock=clock)


@pytest.fixture
def session_data(store: InMemoryStore, clock: FakeClock) -> SessionDataStore:
    return SessionDataStore(store, prefix="test_session_", ttl_seconds=86400, clock=clock)


@pytest.fixture
def token_store(session_data: SessionDataStore) -> TokenStore:
    """Token store holding an expired access token and a valid refresh token."""
    tokens = TokenStore(session_data)
    tokens.set_access_token("T1")
    tokens.set_refresh_token("R1")
    return tokens


@pytest.fixture
def notifier() -> LogoutNotifier:
    return LogoutNotifier()


@pytest.fixture
def logout_events(notifier: LogoutNotifier) -> List[LogoutEvent]:
    """Every logout event emitted during the test."""
    events: List[LogoutEvent] = []
    notifier.subscribe(events.append)
    return events


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def gateway(
    backend: FakeBackend,
    token_store: TokenStore,
    persistent_cache: PersistentCache,
    notifier: LogoutNotifier,
):
    """
    AuthGateway wired to the fake backend.

    Yields:
        Gateway whose HTTP client is closed after the test
    """
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    gateway = AuthGateway(
        token_store,
        persistent_cache=persistent_cache,
        notifier=notifier,
        base_url=BASE_URL,
        client=client,
    )
    yield gateway
    await gateway.close()

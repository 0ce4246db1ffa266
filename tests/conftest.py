"""Pytest configuration and shared fixtures."""

import asyncio
import copy
from typing import Any, Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from storefront.api.dispatcher import RpcDispatcher
from storefront.api.tools import StorefrontTools
from storefront.application.cart_cache import CartCache
from storefront.application.session_store import SessionStore
from storefront.domain.session import Session
from storefront.infrastructure.config import Settings
from storefront.infrastructure.gateway_client import APIError, APIResponse, FakeStoreClient
from storefront.main import create_app

CART_TTL_MS = 30 * 60 * 1000

PRODUCTS = [
    {
        "id": 1,
        "title": "Fjallraven - Foldsack No. 1 Backpack",
        "price": 109.95,
        "description": "Your perfect pack for everyday use.",
        "category": "men's clothing",
        "image": "https://fakestoreapi.com/img/81fPKd-2AYL._AC_SL1500_.jpg",
        "rating": {"rate": 3.9, "count": 120},
    },
    {
        "id": 2,
        "title": "Mens Casual Premium Slim Fit T-Shirts",
        "price": 22.3,
        "description": "Slim-fitting style.",
        "category": "men's clothing",
        "image": "https://fakestoreapi.com/img/71-3HjGNDUL._AC_SY879._SX._UX._SY._UY_.jpg",
        "rating": {"rate": 4.1, "count": 259},
    },
    {
        "id": 5,
        "title": "John Hardy Women's Legends Naga Bracelet",
        "price": 695,
        "description": "From our Legends Collection.",
        "category": "jewelery",
        "image": "https://fakestoreapi.com/img/71pWzhdJNwL._AC_UL640_QL65_ML3_.jpg",
        "rating": {"rate": 4.6, "count": 400},
    },
]

USERS = [
    {
        "id": 1,
        "email": "john@gmail.com",
        "username": "johnd",
        "password": "m38rmF$",
        "name": {"firstname": "john", "lastname": "doe"},
    },
    {
        "id": 2,
        "email": "morrison@gmail.com",
        "username": "mor_2314",
        "password": "83r5^_",
        "name": {"firstname": "david", "lastname": "morrison"},
    },
]

DEMO_USERNAME = "johnd"
DEMO_PASSWORD = "m38rmF$"


def make_success_response(data: Any) -> APIResponse:
    """Create a successful gateway response."""
    return APIResponse(success=True, data=data)


def make_error_response(
    error_code: str = "HTTP_ERROR",
    message: str = "error",
    status_code: int = 400,
) -> APIResponse:
    """Create an error gateway response."""
    return APIResponse(
        success=False,
        error=APIError(
            error_code=error_code,
            message=message,
            status_code=status_code,
        ),
    )


class FakeStoreGateway:
    """In-memory stand-in for the FakeStore API.

    Mirrors the FakeStoreClient interface, records every call and yields
    to the event loop on each call so concurrent requests can interleave.
    """

    def __init__(self) -> None:
        self.products = copy.deepcopy(PRODUCTS)
        self.users = copy.deepcopy(USERS)
        self.carts: list[dict[str, Any]] = []
        self.calls: list[tuple[str, tuple]] = []
        self.fail: set[str] = set()
        self._next_cart_id = 11

    def _record(self, name: str, *args: Any) -> APIResponse | None:
        self.calls.append((name, args))
        if name in self.fail:
            return make_error_response("REQUEST_ERROR", f"{name} unavailable", 502)
        return None

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def close(self) -> None:
        pass

    async def login(self, username: str, password: str) -> APIResponse:
        await asyncio.sleep(0)
        if failed := self._record("login", username):
            return failed
        for user in self.users:
            if user["username"] == username and user["password"] == password:
                return make_success_response({"token": f"token-{username}"})
        return make_error_response(
            "HTTP_ERROR", "username or password is incorrect", 401
        )

    async def list_users(self) -> APIResponse:
        await asyncio.sleep(0)
        if failed := self._record("list_users"):
            return failed
        return make_success_response(copy.deepcopy(self.users))

    async def list_products(
        self,
        category: str | None = None,
        limit: int | None = None,
    ) -> APIResponse:
        await asyncio.sleep(0)
        if failed := self._record("list_products", category, limit):
            return failed
        if category:
            return make_success_response(
                [p for p in self.products if p["category"] == category]
            )
        products = self.products[:limit] if limit else self.products
        return make_success_response(copy.deepcopy(products))

    async def get_product(self, product_id: int) -> APIResponse:
        await asyncio.sleep(0)
        if failed := self._record("get_product", product_id):
            return failed
        for product in self.products:
            if product["id"] == product_id:
                return make_success_response(copy.deepcopy(product))
        # FakeStore answers unknown ids with an empty 200.
        return make_success_response(None)

    async def list_categories(self) -> APIResponse:
        await asyncio.sleep(0)
        if failed := self._record("list_categories"):
            return failed
        return make_success_response(sorted({p["category"] for p in self.products}))

    async def get_user_carts(self, user_id: int) -> APIResponse:
        await asyncio.sleep(0)
        if failed := self._record("get_user_carts", user_id):
            return failed
        return make_success_response(
            [copy.deepcopy(c) for c in self.carts if c["userId"] == user_id]
        )

    async def create_cart(
        self,
        user_id: int,
        products: list[dict[str, int]] | None = None,
    ) -> APIResponse:
        await asyncio.sleep(0)
        if failed := self._record("create_cart", user_id):
            return failed
        cart = {
            "id": self._next_cart_id,
            "userId": user_id,
            "date": "2024-01-01T00:00:00.000Z",
            "products": list(products or []),
        }
        self._next_cart_id += 1
        self.carts.append(cart)
        return make_success_response(copy.deepcopy(cart))

    async def update_cart(
        self,
        cart_id: int,
        user_id: int,
        products: list[dict[str, int]],
    ) -> APIResponse:
        await asyncio.sleep(0)
        if failed := self._record("update_cart", cart_id, user_id, products):
            return failed
        for cart in self.carts:
            if cart["id"] == cart_id:
                cart["products"] = copy.deepcopy(products)
                return make_success_response(copy.deepcopy(cart))
        return make_success_response(
            {"id": cart_id, "userId": user_id, "products": products}
        )


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, start: float = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


# ============================================================================
# Gateway Fixtures
# ============================================================================


@pytest.fixture
def fake_gateway() -> FakeStoreGateway:
    """Create an in-memory FakeStore gateway."""
    return FakeStoreGateway()


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Create a mock FakeStore client."""
    client = MagicMock(spec=FakeStoreClient)

    # Make all methods async
    client.login = AsyncMock()
    client.list_users = AsyncMock()
    client.list_products = AsyncMock()
    client.get_product = AsyncMock()
    client.list_categories = AsyncMock()
    client.get_user_carts = AsyncMock()
    client.create_cart = AsyncMock()
    client.update_cart = AsyncMock()
    client.close = AsyncMock()

    return client


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cart_cache(fake_gateway: FakeStoreGateway, clock: FakeClock) -> CartCache:
    return CartCache(gateway=fake_gateway, ttl_ms=CART_TTL_MS, clock=clock)


@pytest.fixture
def tools(fake_gateway: FakeStoreGateway, cart_cache: CartCache) -> StorefrontTools:
    return StorefrontTools(gateway=fake_gateway, cart_cache=cart_cache)


@pytest.fixture
def session_store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def dispatcher(session_store: SessionStore, tools: StorefrontTools) -> RpcDispatcher:
    return RpcDispatcher(store=session_store, tools=tools)


@pytest.fixture
def session() -> Session:
    """Create an anonymous session."""
    return Session(session_id="test-session")


@pytest.fixture
def logged_in_session() -> Session:
    """Create a session bound to the demo user."""
    session = Session(session_id="logged-in-session")
    user = {k: v for k, v in USERS[0].items() if k != "password"}
    session.sign_in("token-johnd", user)
    return session


# ============================================================================
# HTTP Fixtures
# ============================================================================


@pytest.fixture
def test_settings() -> Settings:
    return Settings(gateway_url="http://fakestore.test", log_level="WARNING")


@pytest.fixture
def app(test_settings: Settings, fake_gateway: FakeStoreGateway):
    """Create an application wired to the in-memory gateway."""
    return create_app(settings=test_settings, gateway=fake_gateway)


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    """Create test client."""
    with TestClient(app) as client:
        yield client


def rpc_call(
    client: TestClient,
    method: str,
    params: dict[str, Any] | None = None,
    session_id: str | None = None,
    request_id: int = 1,
):
    """POST one JSON-RPC envelope to the MCP endpoint."""
    body: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        body["params"] = params
    headers = {"Mcp-Session-Id": session_id} if session_id else {}
    return client.post("/api/mcp", json=body, headers=headers)


def tool_call(
    client: TestClient,
    name: str,
    arguments: dict[str, Any] | None = None,
    session_id: str | None = None,
):
    """POST a tools/call envelope."""
    return rpc_call(
        client,
        "tools/call",
        {"name": name, "arguments": arguments or {}},
        session_id=session_id,
    )

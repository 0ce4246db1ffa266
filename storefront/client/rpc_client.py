"""Storefront RPC client.

Client for the storefront MCP endpoint. Wraps tool calls in JSON-RPC
``tools/call`` envelopes, keeps the session id handed out by the server,
and unwraps the JSON payload carried in the first text content block.
"""

import json
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()

SESSION_HEADER = "Mcp-Session-Id"
PROTOCOL_VERSION = "2025-06-18"


class RpcError(Exception):
    """Raised for JSON-RPC error envelopes and failed HTTP calls."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class StorefrontRpcClient:
    """HTTP client for the storefront MCP endpoint.

    The session id is preserved across logout so a re-login within the
    server's cart TTL sees the same cached cart.
    """

    def __init__(
        self,
        base_url: str,
        endpoint: str = "/api/mcp",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the RPC client.

        Args:
            base_url: Storefront server base URL.
            endpoint: Path of the MCP endpoint.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, e.g. an ASGI transport.
        """
        self.base_url = base_url.rstrip("/")
        self.endpoint = endpoint
        self.timeout = timeout
        self.session_id: str | None = None
        self.auth_token: str | None = None
        self.current_user: dict[str, Any] | None = None
        self._request_id = 0
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Content-Type": "application/json",
                    "MCP-Protocol-Version": PROTOCOL_VERSION,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_authenticated(self) -> bool:
        return self.auth_token is not None and self.current_user is not None

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send one JSON-RPC request and return its ``result``.

        Args:
            method: JSON-RPC method name.
            params: Optional params object.

        Returns:
            The ``result`` member of the response envelope.

        Raises:
            RpcError: On a non-2xx response or an error envelope.
        """
        client = await self._get_client()

        self._request_id += 1
        body: dict[str, Any] = {"jsonrpc": "2.0", "id": self._request_id, "method": method}
        if params is not None:
            body["params"] = params

        headers = {}
        if self.session_id:
            headers[SESSION_HEADER] = self.session_id
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        response = await client.post(self.endpoint, json=body, headers=headers)
        if response.status_code >= 400:
            raise RpcError(
                f"MCP call failed: {response.status_code} {response.reason_phrase}"
            )

        new_session_id = response.headers.get(SESSION_HEADER)
        if new_session_id:
            self.session_id = new_session_id

        envelope = response.json()
        if envelope.get("error"):
            error = envelope["error"]
            raise RpcError(
                error.get("message") or "Unknown RPC error",
                code=error.get("code"),
            )
        return envelope.get("result")

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Call a tool and decode its JSON payload."""
        logger.debug("Calling tool", tool=name, session_id=self.session_id)
        result = await self.request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
        )
        content = result["content"]
        return json.loads(content[0]["text"])

    async def list_tools(self) -> list[dict[str, Any]]:
        result = await self.request("tools/list")
        return result["tools"]

    # =========================================================================
    # Auth
    # =========================================================================

    async def login(self, username: str, password: str) -> dict[str, Any]:
        result = await self.call_tool(
            "login",
            {"username": username, "password": password},
        )
        if result.get("success") and result.get("token") and result.get("user"):
            self.auth_token = result["token"]
            self.current_user = result["user"]
        return result

    async def logout(self) -> dict[str, Any]:
        try:
            return await self.call_tool("logout")
        finally:
            self.auth_token = None
            self.current_user = None

    # =========================================================================
    # Catalog
    # =========================================================================

    async def get_users(self) -> dict[str, Any]:
        return await self.call_tool("get_users")

    async def get_products(
        self,
        category: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        arguments: dict[str, Any] = {}
        if category:
            arguments["category"] = category
        if limit:
            arguments["limit"] = limit
        return await self.call_tool("get_products", arguments)

    async def get_product(self, product_id: int) -> dict[str, Any]:
        return await self.call_tool("get_product", {"productId": product_id})

    async def get_categories(self) -> dict[str, Any]:
        return await self.call_tool("get_categories")

    # =========================================================================
    # Cart
    # =========================================================================

    async def add_to_cart(self, product_id: int, quantity: int = 1) -> dict[str, Any]:
        return await self.call_tool(
            "add_to_cart",
            {"productId": product_id, "quantity": quantity},
        )

    async def remove_from_cart(self, product_id: int) -> dict[str, Any]:
        return await self.call_tool("remove_from_cart", {"productId": product_id})

    async def get_cart(self) -> dict[str, Any]:
        return await self.call_tool("get_cart")

    async def clear_cart(self) -> dict[str, Any]:
        return await self.call_tool("clear_cart")

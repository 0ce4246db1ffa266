"""FakeStore API Client.

Thin HTTP client for the FakeStore REST API, the source of truth for
products, users and carts. This module handles request correlation,
error handling, and response parsing. It never raises for HTTP or
transport failures; callers inspect ``APIResponse.success``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()

# Error codes produced when the gateway could not be reached at all.
TRANSPORT_ERROR_CODES = frozenset({"TIMEOUT", "REQUEST_ERROR", "INVALID_RESPONSE"})


@dataclass
class APIError:
    """Represents a gateway error response."""

    error_code: str
    message: str
    status_code: int
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_transport(self) -> bool:
        """Whether the failure happened before the gateway answered."""
        return self.error_code in TRANSPORT_ERROR_CODES


@dataclass
class APIResponse:
    """Represents a gateway response."""

    success: bool
    data: dict[str, Any] | list[Any] | None = None
    error: APIError | None = None


def format_error(response: APIResponse) -> str:
    """Format a gateway error response for logs and exception messages."""
    if response.error:
        return f"Error [{response.error.error_code}]: {response.error.message}"
    return "Unknown error occurred"


class FakeStoreClient:
    """HTTP client for the FakeStore REST API.

    Provides one method per gateway endpoint used by the storefront tools
    and the cart cache.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the gateway client.

        Args:
            base_url: FakeStore API base URL.
            timeout: Request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> APIResponse:
        """Make a gateway request.

        FakeStore answers some misses with ``200`` and an empty body, so an
        empty body is returned as ``data=None`` rather than treated as an
        error.

        Args:
            method: HTTP method.
            path: API endpoint path.
            json: Request body as JSON.
            params: Query parameters.

        Returns:
            APIResponse with success status and data or error.
        """
        client = await self._get_client()

        # Filter out None params
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            logger.debug(
                "Making gateway request",
                method=method,
                path=path,
                has_body=json is not None,
            )

            response = await client.request(
                method=method,
                url=path,
                json=json,
                params=params,
            )

            if response.status_code >= 400:
                return APIResponse(
                    success=False,
                    error=APIError(
                        error_code="HTTP_ERROR",
                        message=response.text or f"HTTP {response.status_code}",
                        status_code=response.status_code,
                    ),
                )

            if response.status_code == 204 or not response.content:
                return APIResponse(success=True, data=None)

            return APIResponse(success=True, data=response.json())

        except httpx.TimeoutException as e:
            logger.error("Gateway request timeout", path=path, error=str(e))
            return APIResponse(
                success=False,
                error=APIError(
                    error_code="TIMEOUT",
                    message=f"Request timed out: {path}",
                    status_code=504,
                ),
            )
        except httpx.RequestError as e:
            logger.error("Gateway request failed", path=path, error=str(e))
            return APIResponse(
                success=False,
                error=APIError(
                    error_code="REQUEST_ERROR",
                    message=f"Request failed: {str(e)}",
                    status_code=502,
                ),
            )
        except ValueError as e:
            logger.error("Gateway returned invalid JSON", path=path, error=str(e))
            return APIResponse(
                success=False,
                error=APIError(
                    error_code="INVALID_RESPONSE",
                    message=f"Invalid response body: {path}",
                    status_code=502,
                ),
            )

    # =========================================================================
    # Auth Endpoints
    # =========================================================================

    async def login(self, username: str, password: str) -> APIResponse:
        """Authenticate and obtain a bearer token.

        Args:
            username: FakeStore username.
            password: FakeStore password.

        Returns:
            APIResponse with ``{"token": ...}``.
        """
        return await self._request(
            method="POST",
            path="/auth/login",
            json={"username": username, "password": password},
        )

    # =========================================================================
    # User Endpoints
    # =========================================================================

    async def list_users(self) -> APIResponse:
        """List all users."""
        return await self._request(method="GET", path="/users")

    # =========================================================================
    # Product Endpoints
    # =========================================================================

    async def list_products(
        self,
        category: str | None = None,
        limit: int | None = None,
    ) -> APIResponse:
        """List products.

        A category filter is resolved server-side; ``limit`` is only sent
        for the unfiltered listing.

        Args:
            category: Optional category name.
            limit: Optional maximum number of products.

        Returns:
            APIResponse with a list of products.
        """
        if category:
            return await self._request(
                method="GET",
                path=f"/products/category/{category}",
            )
        return await self._request(
            method="GET",
            path="/products",
            params={"limit": limit},
        )

    async def get_product(self, product_id: int) -> APIResponse:
        """Get a product by ID.

        Args:
            product_id: Product identifier.

        Returns:
            APIResponse with product data, or ``data=None`` for unknown ids.
        """
        return await self._request(
            method="GET",
            path=f"/products/{product_id}",
        )

    async def list_categories(self) -> APIResponse:
        """List product categories."""
        return await self._request(method="GET", path="/products/categories")

    # =========================================================================
    # Cart Endpoints
    # =========================================================================

    async def get_user_carts(self, user_id: int) -> APIResponse:
        """List all carts belonging to a user.

        Args:
            user_id: User identifier.

        Returns:
            APIResponse with a list of carts.
        """
        return await self._request(
            method="GET",
            path=f"/carts/user/{user_id}",
        )

    async def create_cart(
        self,
        user_id: int,
        products: list[dict[str, int]] | None = None,
    ) -> APIResponse:
        """Create a cart for a user.

        Args:
            user_id: Owner of the cart.
            products: Initial ``{productId, quantity}`` lines.

        Returns:
            APIResponse with the created cart, including its ``id``.
        """
        return await self._request(
            method="POST",
            path="/carts",
            json={
                "userId": user_id,
                "date": _today(),
                "products": products or [],
            },
        )

    async def update_cart(
        self,
        cart_id: int,
        user_id: int,
        products: list[dict[str, int]],
    ) -> APIResponse:
        """Replace the lines of a cart.

        Args:
            cart_id: Cart identifier.
            user_id: Owner of the cart.
            products: Full list of ``{productId, quantity}`` lines.

        Returns:
            APIResponse with the updated cart.
        """
        return await self._request(
            method="PUT",
            path=f"/carts/{cart_id}",
            json={
                "userId": user_id,
                "date": _today(),
                "products": products,
            },
        )


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()

"""Storefront tool handlers.

One method per tool. Each receives the caller's Session plus validated
arguments and returns a JSON-serializable payload.

Rejected credentials are a business outcome and come back as
``{"success": False, "error": "Invalid credentials"}``. A missing product
is raised as ProductNotFoundError instead, so the two "not found"-like
cases surface differently to clients.
"""

from typing import Any

import structlog

from storefront.application.cart_cache import CartCache
from storefront.domain.exceptions import (
    GatewayError,
    NotAuthenticatedError,
    ProductNotFoundError,
)
from storefront.domain.session import Session
from storefront.infrastructure.gateway_client import (
    APIResponse,
    FakeStoreClient,
    format_error,
)

logger = structlog.get_logger()


def _require_success(operation: str, response: APIResponse) -> Any:
    if not response.success:
        raise GatewayError(
            operation,
            format_error(response),
            status_code=response.error.status_code if response.error else None,
        )
    return response.data


def _require_user(session: Session) -> None:
    if not session.is_authenticated:
        raise NotAuthenticatedError(session.session_id)


class StorefrontTools:
    """Tool handlers backed by the FakeStore gateway and the cart cache."""

    def __init__(self, gateway: FakeStoreClient, cart_cache: CartCache) -> None:
        """Initialize storefront tools.

        Args:
            gateway: FakeStore client.
            cart_cache: Cart cache used by the cart tools.
        """
        self.gateway = gateway
        self.cart = cart_cache

    # =========================================================================
    # Auth
    # =========================================================================

    async def login(
        self,
        session: Session,
        username: str,
        password: str,
    ) -> dict[str, Any]:
        """Authenticate and bind the matching user to the session.

        The user record is looked up by username in the full user list;
        when no user matches, the token is still stored and returned with
        ``user: None``.
        """
        logger.info("Logging in", session_id=session.session_id, username=username)

        response = await self.gateway.login(username, password)
        if not response.success:
            # An unreachable gateway is an outage, not a rejected password.
            if response.error and response.error.is_transport:
                raise GatewayError(
                    "login",
                    format_error(response),
                    status_code=response.error.status_code,
                )
            return {"success": False, "error": "Invalid credentials"}

        token = (response.data or {}).get("token")

        users_response = await self.gateway.list_users()
        users = users_response.data if users_response.success else []
        user = next(
            (u for u in users or [] if u.get("username") == username),
            None,
        )
        if user is None:
            logger.warning("Logged in user not found in user list", username=username)

        previous_cart_id = session.cart_id
        session.sign_in(token, user)
        if previous_cart_id is not None and session.cart_id is None:
            logger.info(
                "Cached cart dropped for new user",
                session_id=session.session_id,
                cart_id=previous_cart_id,
            )
        return {"success": True, "token": token, "user": user}

    async def logout(self, session: Session) -> dict[str, Any]:
        """Clear credentials. The cached cart stays until its TTL expires."""
        session.sign_out()
        return {"success": True}

    # =========================================================================
    # Catalog
    # =========================================================================

    async def get_products(
        self,
        session: Session,
        category: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """List products, filtered by category or capped by limit."""
        response = await self.gateway.list_products(category=category, limit=limit)
        products = _require_success("list_products", response) or []
        return {"success": True, "products": products, "count": len(products)}

    async def get_product(self, session: Session, product_id: int) -> dict[str, Any]:
        """Get one product. Raises ProductNotFoundError on any miss."""
        response = await self.gateway.get_product(product_id)
        if not response.success or not response.data:
            raise ProductNotFoundError(product_id)
        return {"success": True, "product": response.data}

    async def get_categories(self, session: Session) -> dict[str, Any]:
        response = await self.gateway.list_categories()
        categories = _require_success("list_categories", response) or []
        return {"success": True, "categories": categories}

    async def get_users(self, session: Session) -> dict[str, Any]:
        response = await self.gateway.list_users()
        users = _require_success("list_users", response) or []
        return {"success": True, "users": users}

    # =========================================================================
    # Cart
    # =========================================================================

    async def add_to_cart(
        self,
        session: Session,
        product_id: int,
        quantity: int = 1,
    ) -> dict[str, Any]:
        """Add units of a product to the session cart."""
        _require_user(session)
        line = await self.cart.add(session, product_id, quantity)
        return {
            "success": True,
            "message": f"Added {quantity} of product {product_id} to cart",
            "productId": product_id,
            "quantity": line.quantity,
            "cartId": session.cart_id,
        }

    async def remove_from_cart(self, session: Session, product_id: int) -> dict[str, Any]:
        """Remove a product from the session cart."""
        _require_user(session)
        await self.cart.remove(session, product_id)
        return {
            "success": True,
            "message": f"Removed product {product_id} from cart",
            "productId": product_id,
            "cartId": session.cart_id,
        }

    async def get_cart(self, session: Session) -> dict[str, Any]:
        """Return the session cart enriched with product records."""
        _require_user(session)
        cart = await self.cart.read(session)
        return {"success": True, "cart": cart}

    async def clear_cart(self, session: Session) -> dict[str, Any]:
        _require_user(session)
        await self.cart.clear(session)
        return {"success": True, "message": "Cart cleared"}

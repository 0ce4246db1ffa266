"""Session cart cache.

Keeps a TTL-bounded copy of the user's FakeStore cart on the Session.

Reads reconcile a stale cache against the user's most recent gateway
cart. Writes on a session that has no cart yet create an empty gateway
cart and mutate an empty list instead of reading first; this can diverge
from whatever cart the gateway considers current and is kept that way on
purpose. Every mutation is pushed to the gateway before returning, so
outside of TTL expiry the cache and the gateway cart agree.

Gateway failures raise GatewayError. Nothing is retried and partial
state is not rolled back.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from storefront.domain.exceptions import GatewayError, ProductNotFoundError
from storefront.domain.session import CartLine, Session, now_ms
from storefront.infrastructure.gateway_client import (
    APIResponse,
    FakeStoreClient,
    format_error,
)

logger = structlog.get_logger()

DEFAULT_CART_TTL_MS = 30 * 60 * 1000


def _raise_for_response(operation: str, response: APIResponse) -> None:
    if not response.success:
        raise GatewayError(
            operation,
            format_error(response),
            status_code=response.error.status_code if response.error else None,
        )


def _parse_cart_date(value: Any) -> datetime:
    """Parse a FakeStore cart date; unparseable dates sort first."""
    if not isinstance(value, str):
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def select_latest_cart(carts: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Pick the cart with the greatest ``date``.

    Ties go to the cart encountered last.
    """
    latest: dict[str, Any] | None = None
    latest_date: datetime | None = None
    for cart in carts:
        cart_date = _parse_cart_date(cart.get("date"))
        if latest_date is None or cart_date >= latest_date:
            latest = cart
            latest_date = cart_date
    return latest


class CartCache:
    """Cart cache protocol over a Session and the FakeStore gateway.

    Callers are expected to hold ``session.lock`` and to have checked that
    the session is authenticated.
    """

    def __init__(
        self,
        gateway: FakeStoreClient,
        ttl_ms: float = DEFAULT_CART_TTL_MS,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        """Initialize the cart cache.

        Args:
            gateway: FakeStore client.
            ttl_ms: Milliseconds a refreshed cache stays trusted.
            clock: Returns the current time in epoch milliseconds.
        """
        self.gateway = gateway
        self.ttl_ms = ttl_ms
        self.clock = clock

    def is_stale(self, session: Session) -> bool:
        """Whether the session's cart must be refreshed before use.

        A cache exactly ``ttl_ms`` old is still fresh.
        """
        if session.cart_timestamp == 0:
            return True
        return self.clock() - session.cart_timestamp > self.ttl_ms

    # =========================================================================
    # Refresh
    # =========================================================================

    async def _create_cart(self, session: Session) -> None:
        response = await self.gateway.create_cart(user_id=session.user_id)
        _raise_for_response("create_cart", response)
        session.cart_id = response.data["id"]
        session.cart_items = []
        session.cart_user_id = session.user_id
        logger.info(
            "Cart created",
            session_id=session.session_id,
            cart_id=session.cart_id,
        )

    async def _reconcile(self, session: Session) -> None:
        """Adopt the user's most recent gateway cart, or create one."""
        response = await self.gateway.get_user_carts(session.user_id)
        _raise_for_response("get_user_carts", response)

        latest = select_latest_cart(response.data or [])
        if latest is None:
            await self._create_cart(session)
        else:
            session.cart_id = latest["id"]
            session.cart_items = [
                CartLine.from_gateway(item)
                for item in latest.get("products", [])
                if int(item.get("quantity", 0)) > 0
            ]
            logger.info(
                "Cart reconciled",
                session_id=session.session_id,
                cart_id=session.cart_id,
                line_count=len(session.cart_items),
            )
        session.cart_user_id = session.user_id
        session.cart_timestamp = self.clock()

    async def ensure_fresh_for_read(self, session: Session) -> None:
        """Refresh a stale cache from the gateway before a read."""
        if self.is_stale(session):
            await self._reconcile(session)

    async def ensure_cart_for_write(self, session: Session) -> None:
        """Make sure a cart exists before a mutation.

        A session with no cart gets a new, empty gateway cart. A stale
        session that already knows its cart is reconciled like a read.
        """
        if session.cart_id is None:
            await self._create_cart(session)
        elif self.is_stale(session):
            await self._reconcile(session)

    async def _push(self, session: Session) -> None:
        session.cart_timestamp = self.clock()
        response = await self.gateway.update_cart(
            cart_id=session.cart_id,
            user_id=session.user_id,
            products=[line.to_gateway() for line in session.cart_items],
        )
        _raise_for_response("update_cart", response)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def add(self, session: Session, product_id: int, quantity: int) -> CartLine:
        """Add quantity of a product, merging with an existing line.

        Returns:
            The resulting cart line.
        """
        await self.ensure_cart_for_write(session)

        line = session.find_line(product_id)
        if line is None:
            line = CartLine(product_id=product_id, quantity=quantity)
            session.cart_items.append(line)
        else:
            line.quantity += quantity

        await self._push(session)
        return line

    async def remove(self, session: Session, product_id: int) -> None:
        """Remove every unit of a product from the cart."""
        await self.ensure_cart_for_write(session)
        session.cart_items = [
            line for line in session.cart_items if line.product_id != product_id
        ]
        await self._push(session)

    async def clear(self, session: Session) -> None:
        """Empty the cart, creating one first if the session has none."""
        if session.cart_id is None:
            await self._create_cart(session)
        session.cart_items = []
        await self._push(session)

    # =========================================================================
    # Read
    # =========================================================================

    async def _fetch_product(self, product_id: int) -> dict[str, Any]:
        response = await self.gateway.get_product(product_id)
        _raise_for_response("get_product", response)
        if not response.data:
            raise ProductNotFoundError(product_id)
        return response.data

    async def read(self, session: Session) -> dict[str, Any]:
        """Return the cart with product records and totals.

        Returns:
            Dict with ``cartId``, ``items`` (``{product, quantity}``),
            ``totalItems`` and ``totalPrice``.
        """
        await self.ensure_fresh_for_read(session)

        lines = list(session.cart_items)
        products = await asyncio.gather(
            *(self._fetch_product(line.product_id) for line in lines)
        )

        items = [
            {"product": product, "quantity": line.quantity}
            for product, line in zip(products, lines)
        ]
        return {
            "cartId": session.cart_id,
            "items": items,
            "totalItems": sum(line.quantity for line in lines),
            "totalPrice": sum(
                product["price"] * line.quantity
                for product, line in zip(products, lines)
            ),
        }

"""Client-side cart synchronizer.

Holds an optimistic local copy of the cart, mirrors it to durable
storage on every change and pushes mutations to the storefront server.

Two write strategies are used:

- Immediate: ``add_item``, ``remove_item`` and ``update_quantity`` apply
  the local change and call the server right away.
- Debounced: ``increment`` and ``decrement`` apply the local change and
  record the latest absolute quantity per product. After a quiet period
  the pending quantities are flushed in one pass and the local copy is
  reconciled with the server cart.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from storefront.client.rpc_client import RpcError, StorefrontRpcClient
from storefront.client.storage import ClientStorage

logger = structlog.get_logger()

CART_STORAGE_KEY = "cart"
DEFAULT_DEBOUNCE_SECONDS = 0.8


@dataclass
class LocalCartItem:
    """A cart line as the client renders it."""

    product: dict[str, Any]
    quantity: int

    @property
    def product_id(self) -> int:
        return self.product["id"]

    def to_dict(self) -> dict[str, Any]:
        return {"product": self.product, "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LocalCartItem":
        return cls(product=data["product"], quantity=int(data["quantity"]))


class CartSynchronizer:
    """Optimistic cart state kept in step with the storefront server.

    Flushes never overlap: a flush started while another is running waits
    for it to finish. An immediate write supersedes any pending update for
    the same product, and a flush does not reconcile over local changes
    made while it was running.
    """

    def __init__(
        self,
        client: StorefrontRpcClient,
        storage: ClientStorage,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        """Initialize the synchronizer.

        Args:
            client: RPC client bound to the user's server session.
            storage: Durable storage for the local cart.
            debounce_seconds: Quiet period before pending updates flush.
        """
        self.client = client
        self.storage = storage
        self.debounce_seconds = debounce_seconds
        self.items: list[LocalCartItem] = []
        self._pending: dict[int, int] = {}
        self._timer: asyncio.Task | None = None
        self._flush_lock = asyncio.Lock()
        self._write_generation = 0
        self._clear_generation = 0

    # =========================================================================
    # Local State
    # =========================================================================

    def load(self) -> None:
        """Read the stored cart. Called once at startup."""
        stored = self.storage.get(CART_STORAGE_KEY)
        items = []
        for entry in stored or []:
            try:
                items.append(LocalCartItem.from_dict(entry))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed stored cart item", entry=entry)
        self.items = items

    def _set_items(self, items: list[LocalCartItem]) -> None:
        self.items = items
        self.storage.set(CART_STORAGE_KEY, [item.to_dict() for item in items])

    def _find(self, product_id: int) -> LocalCartItem | None:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def _with_quantity(self, product_id: int, quantity: int) -> list[LocalCartItem]:
        return [
            LocalCartItem(
                item.product,
                quantity if item.product_id == product_id else item.quantity,
            )
            for item in self.items
            if item.product_id != product_id or quantity > 0
        ]

    def quantity_of(self, product_id: int) -> int:
        item = self._find(product_id)
        return item.quantity if item else 0

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_price(self) -> float:
        return sum(item.product["price"] * item.quantity for item in self.items)

    @property
    def pending_updates(self) -> dict[int, int]:
        """Quantities waiting for the next flush, keyed by product id."""
        return dict(self._pending)

    # =========================================================================
    # Immediate Write-Through
    # =========================================================================

    async def add_item(self, product: dict[str, Any], quantity: int = 1) -> None:
        """Add units of a product and push the addition.

        If the product has an unflushed update the server has not seen
        the staged quantity, so the merged total is written instead.
        """
        staged = self._pending.pop(product["id"], None) is not None
        self._write_generation += 1
        existing = self._find(product["id"])
        if existing is None:
            self._set_items([*self.items, LocalCartItem(product, quantity)])
        else:
            self._set_items(
                self._with_quantity(existing.product_id, existing.quantity + quantity)
            )

        if staged:
            await self.client.remove_from_cart(product["id"])
            await self.client.add_to_cart(product["id"], self.quantity_of(product["id"]))
        else:
            await self.client.add_to_cart(product["id"], quantity)

    async def remove_item(self, product_id: int) -> None:
        """Drop a product and push the removal."""
        self._pending.pop(product_id, None)
        self._write_generation += 1
        self._set_items([item for item in self.items if item.product_id != product_id])
        await self.client.remove_from_cart(product_id)

    async def update_quantity(self, product_id: int, quantity: int) -> None:
        """Set an absolute quantity and push it.

        Zero removes the product. The server merges additions, so a
        positive quantity is written as a removal followed by an add.
        """
        self._pending.pop(product_id, None)
        self._write_generation += 1
        self._set_items(self._with_quantity(product_id, quantity))

        await self.client.remove_from_cart(product_id)
        if quantity > 0:
            await self.client.add_to_cart(product_id, quantity)

    # =========================================================================
    # Debounced Coalescing
    # =========================================================================

    def increment(self, product_id: int) -> None:
        """Add one unit locally and schedule a debounced write."""
        item = self._find(product_id)
        if item is None:
            return
        self._stage(product_id, item.quantity + 1)

    def decrement(self, product_id: int) -> None:
        """Remove one unit locally and schedule a debounced write."""
        item = self._find(product_id)
        if item is None:
            return
        self._stage(product_id, max(item.quantity - 1, 0))

    def _stage(self, product_id: int, quantity: int) -> None:
        self._set_items(self._with_quantity(product_id, quantity))
        self._pending[product_id] = quantity
        self._restart_timer()

    def _restart_timer(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._fire())

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _fire(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        # Past the quiet period the flush may no longer be cancelled.
        self._timer = None
        try:
            await self.flush()
        except (RpcError, httpx.HTTPError):
            logger.exception("Debounced cart flush failed")

    async def flush(self) -> None:
        """Write all pending quantities, then reconcile with the server.

        A ``clear_cart`` during the flush stops the remaining writes. Local
        changes made during the flush, immediate or staged, skip the
        reconcile, since the server cart read back would not include them.
        """
        async with self._flush_lock:
            if not self._pending:
                return
            updates = dict(self._pending)
            self._pending.clear()
            write_generation = self._write_generation
            clear_generation = self._clear_generation

            logger.debug("Flushing cart updates", updates=updates)

            for product_id, quantity in updates.items():
                if self._clear_generation != clear_generation:
                    break
                await self.client.remove_from_cart(product_id)
                if quantity > 0 and self._clear_generation == clear_generation:
                    await self.client.add_to_cart(product_id, quantity)

            if self._clear_generation != clear_generation:
                logger.debug("Cart cleared during flush, dropping updates")
                return
            await self._reconcile(write_generation)

    async def _reconcile(self, write_generation: int) -> None:
        """Adopt the server cart if it disagrees with local state."""
        result = await self.client.get_cart()
        if self._write_generation != write_generation or self._pending:
            logger.debug("Local cart changed during flush, skipping reconcile")
            return
        try:
            if not result.get("success"):
                return
            server_items = [
                LocalCartItem.from_dict(item) for item in result["cart"].get("items", [])
            ]
            server_quantities = {item.product_id: item.quantity for item in server_items}
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning("Malformed server cart, keeping local cart", result=result)
            return

        differs = len(server_items) != len(self.items) or any(
            server_quantities.get(item.product_id) != item.quantity for item in self.items
        )
        if differs:
            logger.info(
                "Local cart replaced by server cart",
                local_count=len(self.items),
                server_count=len(server_items),
            )
            self._set_items(server_items)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def clear_cart(self) -> None:
        """Empty the cart, dropping any unflushed updates."""
        self._cancel_timer()
        self._pending.clear()
        self._write_generation += 1
        self._clear_generation += 1
        self._set_items([])
        await self.client.clear_cart()

    async def aclose(self) -> None:
        """Cancel the pending flush timer."""
        self._cancel_timer()

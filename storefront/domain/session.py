"""Session state.

A Session holds the authentication state and the cached cart for one
client, keyed by the id carried in the ``Mcp-Session-Id`` header.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


@dataclass
class CartLine:
    """One product line in a cart. Quantity is always positive."""

    product_id: int
    quantity: int

    def to_gateway(self) -> dict[str, int]:
        """Serialize in the FakeStore cart ``products`` format."""
        return {"productId": self.product_id, "quantity": self.quantity}

    @classmethod
    def from_gateway(cls, data: dict[str, Any]) -> "CartLine":
        """Build a line from a FakeStore cart ``products`` entry."""
        return cls(
            product_id=int(data["productId"]),
            quantity=int(data["quantity"]),
        )


@dataclass
class Session:
    """Server-side state for one client session.

    Attributes:
        session_id: Opaque identifier echoed in ``Mcp-Session-Id``.
        auth_token: Bearer token returned by the gateway login.
        current_user: User record matched by username at login.
        cart_id: Gateway cart backing this session.
        cart_items: Cached cart lines.
        cart_timestamp: Epoch-ms of the last cache refresh, 0 if never.
        cart_user_id: User the cached cart belongs to.
        lock: Serializes tool calls made against this session.
    """

    session_id: str
    auth_token: str | None = None
    current_user: dict[str, Any] | None = None
    cart_id: int | None = None
    cart_items: list[CartLine] = field(default_factory=list)
    cart_timestamp: float = 0
    cart_user_id: int | None = None
    created_at: float = field(default_factory=now_ms)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def is_authenticated(self) -> bool:
        """Whether a user is bound to this session."""
        return self.current_user is not None

    @property
    def user_id(self) -> int | None:
        """Gateway id of the current user."""
        if self.current_user is None:
            return None
        return self.current_user.get("id")

    def sign_in(self, token: str, user: dict[str, Any] | None) -> None:
        """Store credentials returned by a successful login.

        A cart cached for a different user is dropped.
        """
        user_id = user.get("id") if user else None
        if self.cart_user_id is not None and user_id != self.cart_user_id:
            self.reset_cart()
        self.auth_token = token
        self.current_user = user

    def sign_out(self) -> None:
        """Drop credentials. The cart cache is left for the TTL to govern."""
        self.auth_token = None
        self.current_user = None

    def reset_cart(self) -> None:
        """Forget the cached cart so the next cart call starts over."""
        self.cart_id = None
        self.cart_items = []
        self.cart_timestamp = 0
        self.cart_user_id = None

    def find_line(self, product_id: int) -> CartLine | None:
        """Return the cached line for a product, if any."""
        for line in self.cart_items:
            if line.product_id == product_id:
                return line
        return None

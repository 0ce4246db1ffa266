"""Application layer: session store and cart cache."""

from storefront.application.cart_cache import CartCache
from storefront.application.session_store import SessionStore

__all__ = ["CartCache", "SessionStore"]

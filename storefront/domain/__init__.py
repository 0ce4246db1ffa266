"""Domain layer: session state and storefront exceptions."""

from storefront.domain.exceptions import (
    GatewayError,
    NotAuthenticatedError,
    ProductNotFoundError,
    StorefrontError,
    UnknownToolError,
)
from storefront.domain.session import CartLine, Session

__all__ = [
    "CartLine",
    "GatewayError",
    "NotAuthenticatedError",
    "ProductNotFoundError",
    "Session",
    "StorefrontError",
    "UnknownToolError",
]

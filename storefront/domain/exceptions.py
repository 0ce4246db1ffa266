"""Domain exceptions.

Errors raised by tool handlers and the cart cache. The dispatcher turns
any of these into a JSON-RPC internal error carrying the exception
message. Business outcomes such as rejected credentials are not
exceptions; they are returned as ``success: false`` payloads.
"""

from typing import Any


class StorefrontError(Exception):
    """Base class for all storefront exceptions."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize storefront error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Session Errors
# ============================================================================


class NotAuthenticatedError(StorefrontError):
    """Raised when a cart operation runs on a session without a user."""

    def __init__(self, session_id: str | None = None) -> None:
        super().__init__(
            "User must be logged in",
            details={"session_id": session_id},
        )


# ============================================================================
# Catalog Errors
# ============================================================================


class ProductNotFoundError(StorefrontError):
    """Raised when the gateway has no product for the requested id."""

    def __init__(self, product_id: int) -> None:
        super().__init__(
            "Product not found",
            details={"product_id": product_id},
        )


# ============================================================================
# Protocol Errors
# ============================================================================


class UnknownToolError(StorefrontError):
    """Raised when tools/call names a tool that is not registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            f"Unknown tool: {tool_name}",
            details={"tool": tool_name},
        )


# ============================================================================
# Gateway Errors
# ============================================================================


class GatewayError(StorefrontError):
    """Raised when a FakeStore call fails inside a tool or cache operation."""

    def __init__(
        self,
        operation: str,
        reason: str,
        status_code: int | None = None,
    ) -> None:
        """Initialize gateway error.

        Args:
            operation: Gateway operation that failed (e.g. "update_cart").
            reason: Error description from the gateway client.
            status_code: HTTP status, when the gateway answered at all.
        """
        super().__init__(
            f"Gateway {operation} failed: {reason}",
            details={
                "operation": operation,
                "reason": reason,
                "status_code": status_code,
            },
        )
        self.operation = operation
        self.status_code = status_code

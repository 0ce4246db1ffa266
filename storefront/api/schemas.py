"""Tool input schemas and protocol envelopes.

Tool inputs use the camelCase argument names the browser client sends
(``productId``) and also accept snake_case field names.
"""

from typing import Any

from mcp.types import Tool
from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# JSON-RPC Envelope
# ============================================================================


class RpcRequest(BaseModel):
    """Incoming JSON-RPC request envelope.

    ``jsonrpc`` is optional: clients that omit it are still served.
    """

    jsonrpc: str | None = None
    id: int | str | None = None
    method: str
    params: dict[str, Any] | None = None


class ToolCallParams(BaseModel):
    """``params`` of a ``tools/call`` request."""

    name: str
    arguments: dict[str, Any] | None = None


# ============================================================================
# Tool Input Schemas
# ============================================================================


class ToolInput(BaseModel):
    """Base class for tool inputs."""

    model_config = ConfigDict(populate_by_name=True)


class EmptyInput(ToolInput):
    """Input schema for tools without arguments."""


class LoginInput(ToolInput):
    """Input schema for login tool."""

    username: str = Field(..., description="FakeStore username.")
    password: str = Field(..., description="FakeStore password.")


class GetProductsInput(ToolInput):
    """Input schema for get_products tool."""

    category: str | None = Field(
        None,
        description="Only return products in this category.",
    )
    limit: int | None = Field(
        None,
        ge=1,
        description="Maximum number of products. Ignored when category is set.",
    )


class GetProductInput(ToolInput):
    """Input schema for get_product tool."""

    product_id: int = Field(..., alias="productId", description="Product ID.")


class AddToCartInput(ToolInput):
    """Input schema for add_to_cart tool."""

    product_id: int = Field(..., alias="productId", description="Product ID.")
    quantity: int = Field(
        default=1,
        ge=1,
        description="Units to add to any quantity already in the cart.",
    )


class RemoveFromCartInput(ToolInput):
    """Input schema for remove_from_cart tool."""

    product_id: int = Field(..., alias="productId", description="Product ID.")


# ============================================================================
# Tool Definitions
# ============================================================================


def _tool(name: str, description: str, input_model: type[BaseModel]) -> Tool:
    return Tool(
        name=name,
        description=description,
        inputSchema=input_model.model_json_schema(by_alias=True),
    )


TOOLS: list[Tool] = [
    _tool("login", "Authenticate user with FakeStore API", LoginInput),
    _tool("logout", "Log out the current user", EmptyInput),
    _tool("get_products", "Get all products or filter by category", GetProductsInput),
    _tool("get_product", "Get a single product by ID", GetProductInput),
    _tool("get_categories", "Get all product categories", EmptyInput),
    _tool("get_users", "Get all users", EmptyInput),
    _tool("add_to_cart", "Add item to user's cart", AddToCartInput),
    _tool("remove_from_cart", "Remove item from user's cart", RemoveFromCartInput),
    _tool("get_cart", "Get current cart", EmptyInput),
    _tool("clear_cart", "Clear the cart", EmptyInput),
]

"""Storefront MCP Server.

Exposes the FakeStore catalog and cart as MCP tools over a JSON-RPC
endpoint, with per-session authentication and a TTL-bounded cart cache.

This package provides:
- JSON-RPC dispatch of MCP protocol methods and tool calls
- Session store with per-session serialization
- Cart cache reconciled against the FakeStore API
- Client-side RPC client and optimistic cart synchronizer

Tools:
1. login - Authenticate against FakeStore
2. logout - Clear session credentials
3. get_products - List products, optionally by category
4. get_product - Get a single product
5. get_categories - List categories
6. get_users - List users
7. add_to_cart - Add a product to the session cart
8. remove_from_cart - Remove a product from the session cart
9. get_cart - Get the enriched session cart
10. clear_cart - Empty the session cart
"""

__version__ = "1.0.0"

"""API layer module.

Contains the MCP transport router, the JSON-RPC dispatcher and the
storefront tool handlers.
"""

from storefront.api.health import router as health_router
from storefront.api.rpc import router as rpc_router

__all__ = [
    "health_router",
    "rpc_router",
]

"""Client side of the storefront: RPC client and cart synchronizer."""

from storefront.client.rpc_client import RpcError, StorefrontRpcClient
from storefront.client.storage import JsonFileStorage, MemoryStorage
from storefront.client.synchronizer import CartSynchronizer, LocalCartItem

__all__ = [
    "CartSynchronizer",
    "JsonFileStorage",
    "LocalCartItem",
    "MemoryStorage",
    "RpcError",
    "StorefrontRpcClient",
]

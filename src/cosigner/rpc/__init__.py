"""Chain API access: ABI lookups and transaction broadcast."""

from cosigner.rpc.broadcast import BroadcastClient
from cosigner.rpc.client import LedgerRpc, RpcError
from cosigner.rpc.interfaces import (
    CachedInterfaceResolver,
    InterfaceResolver,
    create_interface_resolver,
)

__all__ = [
    "BroadcastClient",
    "CachedInterfaceResolver",
    "InterfaceResolver",
    "LedgerRpc",
    "RpcError",
    "create_interface_resolver",
]

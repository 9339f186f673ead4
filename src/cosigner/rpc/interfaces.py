"""Contract interface (ABI) resolution."""

import logging
import time
from typing import Callable, Iterable, Optional, Union

from cosigner.chain.abi import Abi
from cosigner.chain.transaction import Transaction
from cosigner.errors import AccountHasNoInterface, InterfaceUnavailable, SerializationError
from cosigner.rpc.client import LedgerRpc, RpcError

logger = logging.getLogger(__name__)


def _distinct(accounts: Union[Transaction, Iterable[str]]) -> list[str]:
    if isinstance(accounts, Transaction):
        return accounts.accounts()
    return list(dict.fromkeys(accounts))


class InterfaceResolver:
    """Fetches the ABI of every contract a transaction touches."""

    def __init__(self, rpc: LedgerRpc):
        self.rpc = rpc

    async def fetch_interface(self, account: str) -> Abi:
        """Fetch and parse one account's ABI.

        Raises:
            AccountHasNoInterface: the account has no contract deployed
            InterfaceUnavailable: network failure or unusable ABI document
        """
        try:
            response = await self.rpc.get_abi(account)
        except RpcError as e:
            raise InterfaceUnavailable(
                f"Cannot fetch interface for {account}: {e.reason}", cause=e
            ) from e

        definition = response.get("abi") if isinstance(response, dict) else None
        if not definition:
            raise AccountHasNoInterface(f"Account {account} has no contract interface")
        try:
            return Abi.from_json(definition, account)
        except SerializationError as e:
            raise InterfaceUnavailable(f"Unusable interface for {account}: {e.message}", cause=e) from e

    async def resolve_interfaces(self, accounts: Union[Transaction, Iterable[str]]) -> dict[str, Abi]:
        """Map each distinct account to its ABI.

        Accounts are fetched one at a time in first-seen order; a failure
        for any of them fails the whole call.
        """
        interfaces: dict[str, Abi] = {}
        for account in _distinct(accounts):
            interfaces[account] = await self.fetch_interface(account)
        logger.debug(f"Resolved interfaces for {list(interfaces)}")
        return interfaces


class CachedInterfaceResolver:
    """Sits in front of an InterfaceResolver and remembers ABIs for ``ttl`` seconds.

    Only successful lookups are cached. Expired entries are dropped when
    looked up and swept whenever a new entry is stored.
    """

    def __init__(self, resolver: InterfaceResolver, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.resolver = resolver
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Abi]] = {}

    async def fetch_interface(self, account: str) -> Abi:
        now = self._clock()
        entry = self._entries.get(account)
        if entry is not None:
            if entry[0] > now:
                return entry[1]
            del self._entries[account]

        abi = await self.resolver.fetch_interface(account)
        self._sweep(now)
        self._entries[account] = (now + self.ttl, abi)
        return abi

    async def resolve_interfaces(self, accounts: Union[Transaction, Iterable[str]]) -> dict[str, Abi]:
        interfaces: dict[str, Abi] = {}
        for account in _distinct(accounts):
            interfaces[account] = await self.fetch_interface(account)
        return interfaces

    def invalidate(self, account: Optional[str] = None) -> None:
        """Drop one cached ABI, or all of them."""
        if account is None:
            self._entries.clear()
        else:
            self._entries.pop(account, None)

    def _sweep(self, now: float) -> None:
        expired = [account for account, (expires, _) in self._entries.items() if expires <= now]
        for account in expired:
            del self._entries[account]


def create_interface_resolver(
    rpc: LedgerRpc, cache_ttl: float = 0.0
) -> Union[InterfaceResolver, CachedInterfaceResolver]:
    resolver = InterfaceResolver(rpc)
    if cache_ttl > 0:
        logger.info(f"Caching contract interfaces for {cache_ttl}s")
        return CachedInterfaceResolver(resolver, cache_ttl)
    return resolver

"""Tests for the chain API client, interface resolver and broadcast client."""

import pytest
import pytest_asyncio

from cosigner.chain import CombinedTransaction, serialize_transaction, transaction_id
from cosigner.errors import AccountHasNoInterface, BroadcastError, InterfaceUnavailable
from cosigner.rpc import (
    BroadcastClient,
    CachedInterfaceResolver,
    InterfaceResolver,
    LedgerRpc,
    RpcError,
    create_interface_resolver,
)

from conftest import FakeChain, sample_transaction


@pytest_asyncio.fixture
async def rpc(fake_chain):
    client = LedgerRpc("http://chain.test", transport=fake_chain.transport)
    yield client
    await client.aclose()


class TestInterfaceResolver:
    """Tests for ABI lookups."""

    @pytest.mark.asyncio
    async def test_each_account_fetched_once_in_order(self, rpc, fake_chain):
        tx = sample_transaction()
        interfaces = await InterfaceResolver(rpc).resolve_interfaces(["eosio.token", "cosigner", "eosio.token"])

        assert list(interfaces) == ["eosio.token", "cosigner"]
        assert fake_chain.abi_requests == ["eosio.token", "cosigner"]
        assert interfaces["eosio.token"].action_type("transfer") == "transfer"
        assert set(await InterfaceResolver(rpc).resolve_interfaces(tx)) == {"cosigner", "eosio.token"}

    @pytest.mark.asyncio
    async def test_account_without_contract(self, rpc):
        with pytest.raises(AccountHasNoInterface) as exc:
            await InterfaceResolver(rpc).resolve_interfaces(["alice"])
        assert exc.value.downstream

    @pytest.mark.asyncio
    async def test_node_unreachable(self, rpc, fake_chain):
        fake_chain.offline = True
        with pytest.raises(InterfaceUnavailable) as exc:
            await InterfaceResolver(rpc).resolve_interfaces(["eosio.token"])
        assert not isinstance(exc.value, AccountHasNoInterface)

    @pytest.mark.asyncio
    async def test_unusable_abi(self, rpc, fake_chain):
        fake_chain.abis["broken"] = {"structs": [{"fields": []}]}
        with pytest.raises(InterfaceUnavailable):
            await InterfaceResolver(rpc).resolve_interfaces(["broken"])

    @pytest.mark.asyncio
    async def test_empty_account_list(self, rpc, fake_chain):
        assert await InterfaceResolver(rpc).resolve_interfaces([]) == {}
        assert fake_chain.abi_requests == []


class TestCachedInterfaceResolver:
    """Tests for the ABI cache."""

    @pytest.mark.asyncio
    async def test_cache_hit_and_expiry(self, rpc, fake_chain):
        now = [100.0]
        resolver = CachedInterfaceResolver(InterfaceResolver(rpc), ttl=60, clock=lambda: now[0])

        await resolver.resolve_interfaces(["eosio.token"])
        await resolver.resolve_interfaces(["eosio.token"])
        assert fake_chain.abi_requests == ["eosio.token"]

        now[0] += 61
        await resolver.resolve_interfaces(["eosio.token"])
        assert fake_chain.abi_requests == ["eosio.token", "eosio.token"]

    @pytest.mark.asyncio
    async def test_invalidate(self, rpc, fake_chain):
        resolver = CachedInterfaceResolver(InterfaceResolver(rpc), ttl=60)
        await resolver.resolve_interfaces(["eosio.token", "cosigner"])

        resolver.invalidate("eosio.token")
        await resolver.resolve_interfaces(["eosio.token", "cosigner"])
        assert fake_chain.abi_requests == ["eosio.token", "cosigner", "eosio.token"]

        resolver.invalidate()
        await resolver.resolve_interfaces(["cosigner"])
        assert fake_chain.abi_requests[-1] == "cosigner"

    @pytest.mark.asyncio
    async def test_failures_not_cached(self, rpc, fake_chain):
        resolver = CachedInterfaceResolver(InterfaceResolver(rpc), ttl=60)
        with pytest.raises(AccountHasNoInterface):
            await resolver.resolve_interfaces(["alice"])
        with pytest.raises(AccountHasNoInterface):
            await resolver.resolve_interfaces(["alice"])
        assert fake_chain.abi_requests == ["alice", "alice"]

    @pytest.mark.asyncio
    async def test_expired_entries_are_evicted(self, rpc, fake_chain):
        now = [100.0]
        resolver = CachedInterfaceResolver(InterfaceResolver(rpc), ttl=60, clock=lambda: now[0])
        await resolver.resolve_interfaces(["eosio.token", "cosigner"])
        assert set(resolver._entries) == {"eosio.token", "cosigner"}

        now[0] += 61
        await resolver.resolve_interfaces(["eosio.token"])
        assert set(resolver._entries) == {"eosio.token"}

    @pytest.mark.asyncio
    async def test_delegates_to_wrapped_resolver(self, rpc):
        calls = []

        class CountingResolver(InterfaceResolver):
            async def fetch_interface(self, account):
                calls.append(account)
                return await super().fetch_interface(account)

        resolver = CachedInterfaceResolver(CountingResolver(rpc), ttl=60)
        await resolver.resolve_interfaces(["eosio.token", "eosio.token"])
        await resolver.fetch_interface("eosio.token")
        assert calls == ["eosio.token"]


    @pytest.mark.asyncio
    async def test_factory(self, rpc):
        assert type(create_interface_resolver(rpc, 0)) is InterfaceResolver
        cached = create_interface_resolver(rpc, 30)
        assert isinstance(cached, CachedInterfaceResolver)
        assert type(cached.resolver) is InterfaceResolver


class TestBroadcastClient:
    """Tests for pushing combined transactions."""

    def _combined(self) -> CombinedTransaction:
        return CombinedTransaction(
            packed_trx=serialize_transaction(sample_transaction()),
            signatures=("SIG_K1_caller", "SIG_K1_cosigner"),
        )

    @pytest.mark.asyncio
    async def test_submit(self, rpc, fake_chain):
        combined = self._combined()
        tx_id = await BroadcastClient(rpc).submit(combined)

        assert tx_id == transaction_id(combined.packed_trx)
        pushed = fake_chain.pushed[0]
        assert pushed["signatures"] == ["SIG_K1_caller", "SIG_K1_cosigner"]
        assert pushed["packed_trx"] == combined.packed_trx.hex()
        assert pushed["compression"] == 0

    @pytest.mark.asyncio
    async def test_node_rejection_parsed(self, rpc, fake_chain):
        fake_chain.push_error = (
            500,
            {
                "code": 500,
                "message": "Internal Service Error",
                "error": {
                    "code": 3090003,
                    "name": "unsatisfied_authorization",
                    "what": "Provided keys, permissions, and delays do not satisfy declared authorizations",
                    "details": [{"message": "transaction declares authority '{\"actor\":\"alice\"}'"}],
                },
            },
        )
        with pytest.raises(BroadcastError) as exc:
            await BroadcastClient(rpc).submit(self._combined())

        assert exc.value.status_code == 500
        assert exc.value.error_name == "unsatisfied_authorization"
        assert "transaction declares authority" in exc.value.message
        assert len(fake_chain.pushed) == 1

    @pytest.mark.asyncio
    async def test_rejection_without_details_uses_what(self, rpc, fake_chain):
        fake_chain.push_error = (400, {"error": {"name": "tx_duplicate", "what": "Duplicate transaction"}})
        with pytest.raises(BroadcastError) as exc:
            await BroadcastClient(rpc).submit(self._combined())
        assert "Duplicate transaction" in exc.value.message

    @pytest.mark.asyncio
    async def test_transport_failure(self, rpc, fake_chain):
        fake_chain.offline = True
        with pytest.raises(BroadcastError) as exc:
            await BroadcastClient(rpc).submit(self._combined())
        assert exc.value.status_code is None
        assert exc.value.downstream


class TestLedgerRpc:
    """Tests for the raw client."""

    @pytest.mark.asyncio
    async def test_get_info(self, rpc):
        info = await rpc.get_info()
        assert info["head_block_num"] == 1000

    @pytest.mark.asyncio
    async def test_unknown_endpoint_error(self):
        chain = FakeChain()
        client = LedgerRpc("http://chain.test/", transport=chain.transport)
        try:
            assert client.base_url == "http://chain.test"
            with pytest.raises(RpcError) as exc:
                await client._post("/v1/chain/nope", {})
            assert exc.value.status_code == 404
            assert exc.value.reason == "/v1/chain/nope"
        finally:
            await client.aclose()

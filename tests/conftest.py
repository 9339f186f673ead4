"""Pytest configuration and fixtures."""

import hashlib
import json
import os
from typing import Optional

import httpx
import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["COSIGNER_ACCOUNT"] = "cosigner"
os.environ["COSIGNER_PERMISSION"] = "cosign"
os.environ["COSIGNER_PRIVATE_KEY"] = "5KQwrPbwdL6PhXujxW37FSSQZ1JiwsST4cqQzDeyXtP79zkvFD3"
os.environ["API_URL"] = "http://chain.test"
os.environ["ABI_CACHE_TTL"] = "0"

from cosigner.chain import Abi, Action, PermissionLevel, PrivateKey, Transaction, serialize_transaction
from cosigner.chains import CHAINS
from cosigner.signing.base import signing_digest

EOS_CHAIN_ID = CHAINS["EOS"].chain_id
COSIGNER_WIF = os.environ["COSIGNER_PRIVATE_KEY"]
COSIGNER_PUBLIC = "EOS6MRyAjQq8ud7hVNYcfnVPJqcVpscN5So8BhtHuGYqET5GDW5CV"

TOKEN_ABI = {
    "version": "eosio::abi/1.1",
    "types": [],
    "structs": [
        {
            "name": "transfer",
            "base": "",
            "fields": [
                {"name": "from", "type": "name"},
                {"name": "to", "type": "name"},
                {"name": "quantity", "type": "asset"},
                {"name": "memo", "type": "string"},
            ],
        }
    ],
    "actions": [{"name": "transfer", "type": "transfer", "ricardian_contract": ""}],
}

NOOP_ABI = {
    "version": "eosio::abi/1.1",
    "structs": [{"name": "noop", "base": "", "fields": []}],
    "actions": [{"name": "noop", "type": "noop", "ricardian_contract": ""}],
}


class FakeChain:
    """In-memory chain API node served through httpx.MockTransport."""

    def __init__(self, abis: Optional[dict] = None):
        self.abis = dict(abis if abis is not None else {"eosio.token": TOKEN_ABI, "cosigner": NOOP_ABI})
        self.abi_requests: list[str] = []
        self.pushed: list[dict] = []
        self.push_error: Optional[tuple[int, dict]] = None
        self.offline = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)
        body = json.loads(request.content or b"{}")
        path = request.url.path

        if path == "/v1/chain/get_abi":
            account = body["account_name"]
            self.abi_requests.append(account)
            if account not in self.abis:
                return httpx.Response(200, json={"account_name": account})
            return httpx.Response(200, json={"account_name": account, "abi": self.abis[account]})

        if path == "/v1/chain/push_transaction":
            self.pushed.append(body)
            if self.push_error is not None:
                status, error = self.push_error
                return httpx.Response(status, json=error)
            trx_id = hashlib.sha256(bytes.fromhex(body["packed_trx"])).hexdigest()
            return httpx.Response(200, json={"transaction_id": trx_id, "processed": {"id": trx_id}})

        if path == "/v1/chain/get_info":
            return httpx.Response(200, json={"chain_id": EOS_CHAIN_ID, "head_block_num": 1000})

        return httpx.Response(404, json={"error": {"name": "not_found", "what": path}})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def transfer_action(sender: str = "alice", memo: str = "hello") -> Action:
    data = Abi(TOKEN_ABI, "eosio.token").pack_action_data(
        "transfer", {"from": sender, "to": "bob", "quantity": "1.0000 EOS", "memo": memo}
    )
    return Action("eosio.token", "transfer", [PermissionLevel(sender, "active")], data)


def noop_action(actor: str = "cosigner", permission: str = "cosign") -> Action:
    return Action("cosigner", "noop", [PermissionLevel(actor, permission)], b"")


def sample_transaction(**overrides) -> Transaction:
    fields = dict(
        expiration="2026-10-18T12:00:00",
        ref_block_num=1234,
        ref_block_prefix=56789,
        actions=[noop_action(), transfer_action()],
    )
    fields.update(overrides)
    return Transaction(**fields)


def sign_as_caller(key: PrivateKey, transaction: Transaction, chain_id: str = EOS_CHAIN_ID) -> str:
    digest = signing_digest(chain_id, serialize_transaction(transaction))
    return key.sign_digest(digest).to_string()


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def caller_key() -> PrivateKey:
    return PrivateKey.generate()


@pytest.fixture
def cosigner_key() -> PrivateKey:
    return PrivateKey.from_string(COSIGNER_WIF)

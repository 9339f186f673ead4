"""Transactions, actions and the fixed EOSIO transaction layout.

The packed transaction is what gets signed; its field order and widths
are defined by the chain, so the layout lives here as a builtin ABI and
is run through the same codec as contract data.
"""

import hashlib
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Union

from cosigner.chain.abi import Abi
from cosigner.errors import SerializationError


BLANK_EXPIRATION = "1970-01-01T00:00:00"

TRANSACTION_ABI_DEFINITION: dict = {
    "version": "eosio::abi/1.1",
    "types": [
        {"new_type_name": "account_name", "type": "name"},
        {"new_type_name": "action_name", "type": "name"},
        {"new_type_name": "permission_name", "type": "name"},
    ],
    "structs": [
        {
            "name": "permission_level",
            "base": "",
            "fields": [
                {"name": "actor", "type": "account_name"},
                {"name": "permission", "type": "permission_name"},
            ],
        },
        {
            "name": "action",
            "base": "",
            "fields": [
                {"name": "account", "type": "account_name"},
                {"name": "name", "type": "action_name"},
                {"name": "authorization", "type": "permission_level[]"},
                {"name": "data", "type": "bytes"},
            ],
        },
        {
            "name": "extension",
            "base": "",
            "fields": [
                {"name": "type", "type": "uint16"},
                {"name": "data", "type": "bytes"},
            ],
        },
        {
            "name": "transaction_header",
            "base": "",
            "fields": [
                {"name": "expiration", "type": "time_point_sec"},
                {"name": "ref_block_num", "type": "uint16"},
                {"name": "ref_block_prefix", "type": "uint32"},
                {"name": "max_net_usage_words", "type": "varuint32"},
                {"name": "max_cpu_usage_ms", "type": "uint8"},
                {"name": "delay_sec", "type": "varuint32"},
            ],
        },
        {
            "name": "transaction",
            "base": "transaction_header",
            "fields": [
                {"name": "context_free_actions", "type": "action[]"},
                {"name": "actions", "type": "action[]"},
                {"name": "transaction_extensions", "type": "extension[]"},
            ],
        },
    ],
}

TRANSACTION_ABI = Abi(TRANSACTION_ABI_DEFINITION)


@dataclass(frozen=True)
class PermissionLevel:
    """An actor@permission pair authorizing an action."""
    actor: str
    permission: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PermissionLevel":
        return cls(actor=data["actor"], permission=data["permission"])

    def to_dict(self) -> dict:
        return {"actor": self.actor, "permission": self.permission}

    def __str__(self) -> str:
        return f"{self.actor}@{self.permission}"


@dataclass
class Action:
    """A contract action.

    ``data`` is either the structured arguments (before serialize_actions)
    or the packed bytes (after).
    """
    account: str
    name: str
    authorization: list[PermissionLevel]
    data: Union[bytes, dict]

    @property
    def is_packed(self) -> bool:
        return isinstance(self.data, (bytes, bytearray))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Action":
        payload = data.get("data", b"")
        if isinstance(payload, str):
            payload = bytes.fromhex(payload)
        return cls(
            account=data["account"],
            name=data["name"],
            authorization=[PermissionLevel.from_dict(a) for a in data.get("authorization", [])],
            data=payload,
        )

    def to_dict(self) -> dict:
        if not self.is_packed:
            raise SerializationError(f"Action {self.account}::{self.name} has not been serialized")
        return {
            "account": self.account,
            "name": self.name,
            "authorization": [a.to_dict() for a in self.authorization],
            "data": bytes(self.data).hex(),
        }


@dataclass
class Transaction:
    """Chain-ready transaction. Action order is significant."""
    expiration: str = BLANK_EXPIRATION
    ref_block_num: int = 0
    ref_block_prefix: int = 0
    max_net_usage_words: int = 0
    max_cpu_usage_ms: int = 0
    delay_sec: int = 0
    context_free_actions: list[Action] = field(default_factory=list)
    actions: list[Action] = field(default_factory=list)
    transaction_extensions: list[tuple[int, bytes]] = field(default_factory=list)

    @property
    def has_blank_header(self) -> bool:
        """True for requests that leave TaPoS and expiration to the signer."""
        return (
            self.expiration.rstrip("Z").split(".")[0] == BLANK_EXPIRATION
            and self.ref_block_num == 0
            and self.ref_block_prefix == 0
        )

    def accounts(self) -> list[str]:
        """Distinct contract accounts referenced, in first-seen order."""
        seen: dict[str, None] = {}
        for action in [*self.context_free_actions, *self.actions]:
            seen.setdefault(action.account)
        return list(seen)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Transaction":
        return cls(
            expiration=data["expiration"],
            ref_block_num=int(data["ref_block_num"]),
            ref_block_prefix=int(data["ref_block_prefix"]),
            max_net_usage_words=int(data.get("max_net_usage_words", 0)),
            max_cpu_usage_ms=int(data.get("max_cpu_usage_ms", 0)),
            delay_sec=int(data.get("delay_sec", 0)),
            context_free_actions=[Action.from_dict(a) for a in data.get("context_free_actions", [])],
            actions=[Action.from_dict(a) for a in data.get("actions", [])],
            transaction_extensions=[
                (int(ext["type"]), bytes.fromhex(ext["data"]))
                for ext in data.get("transaction_extensions", [])
            ],
        )

    def to_dict(self) -> dict:
        return {
            "expiration": self.expiration,
            "ref_block_num": self.ref_block_num,
            "ref_block_prefix": self.ref_block_prefix,
            "max_net_usage_words": self.max_net_usage_words,
            "max_cpu_usage_ms": self.max_cpu_usage_ms,
            "delay_sec": self.delay_sec,
            "context_free_actions": [a.to_dict() for a in self.context_free_actions],
            "actions": [a.to_dict() for a in self.actions],
            "transaction_extensions": [
                {"type": ext_type, "data": ext_data.hex()}
                for ext_type, ext_data in self.transaction_extensions
            ],
        }


def serialize_action(action: Action, interfaces: Mapping[str, Abi]) -> Action:
    """Pack one action's arguments with its contract's ABI."""
    if action.is_packed:
        return action
    abi = interfaces.get(action.account)
    if abi is None:
        raise SerializationError(f"No interface available for contract {action.account}")
    return replace(action, data=abi.pack_action_data(action.name, action.data))


def serialize_actions(transaction: Transaction, interfaces: Mapping[str, Abi]) -> Transaction:
    """Return a copy of ``transaction`` with every action's data packed."""
    return replace(
        transaction,
        context_free_actions=[serialize_action(a, interfaces) for a in transaction.context_free_actions],
        actions=[serialize_action(a, interfaces) for a in transaction.actions],
    )


def serialize_transaction(transaction: Transaction) -> bytes:
    """Pack a transaction into its canonical bytes.

    Every action must already carry packed data (see serialize_actions).
    """
    try:
        return TRANSACTION_ABI.serialize("transaction", transaction.to_dict())
    except ValueError as e:
        raise SerializationError(f"Invalid transaction field: {e}") from e


def deserialize_transaction(data: bytes) -> Transaction:
    return Transaction.from_dict(TRANSACTION_ABI.deserialize("transaction", data))


def transaction_id(packed_trx: bytes) -> str:
    return hashlib.sha256(packed_trx).hexdigest()


@dataclass(frozen=True)
class CombinedTransaction:
    """Packed transaction plus every signature needed to push it.

    The caller's signature comes first, the cosigner's second.
    """
    packed_trx: bytes
    signatures: tuple[str, ...]

    @property
    def transaction_id(self) -> str:
        return transaction_id(self.packed_trx)

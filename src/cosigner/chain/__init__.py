"""EOSIO chain primitives: ABI codec, transactions, K1 keys."""

from cosigner.chain.abi import Abi
from cosigner.chain.keys import PrivateKey, PublicKey, Signature
from cosigner.chain.transaction import (
    Action,
    CombinedTransaction,
    PermissionLevel,
    Transaction,
    deserialize_transaction,
    serialize_actions,
    serialize_transaction,
    transaction_id,
)

__all__ = [
    "Abi",
    "Action",
    "CombinedTransaction",
    "PermissionLevel",
    "PrivateKey",
    "PublicKey",
    "Signature",
    "Transaction",
    "deserialize_transaction",
    "serialize_actions",
    "serialize_transaction",
    "transaction_id",
]

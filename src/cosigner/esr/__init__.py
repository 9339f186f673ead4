"""EOSIO Signing Request (ESR) codec.

Decodes the compact ``esr:`` payloads wallets hand back to the service
and resolves them into concrete transactions.
"""

from cosigner.esr.codec import decode, encode
from cosigner.esr.request import (
    PLACEHOLDER_NAME,
    PLACEHOLDER_PERMISSION,
    SigningRequest,
    TransactionContext,
    extract_chain_id,
    resolve_placeholders,
)

__all__ = [
    "PLACEHOLDER_NAME",
    "PLACEHOLDER_PERMISSION",
    "SigningRequest",
    "TransactionContext",
    "decode",
    "encode",
    "extract_chain_id",
    "resolve_placeholders",
]

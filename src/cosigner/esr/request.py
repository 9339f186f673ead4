"""Signing request model and transaction resolution.

A signing request carries either a single action, a list of actions, a
full transaction or an identity proof. Action data inside the request is
already ABI-packed. Two reserved names stand in for whoever ends up
signing:

    ............1   signer actor
    ............2   signer permission

Resolving a request against a signer replaces those placeholders (in
authorizations and inside action arguments) and yields a concrete
``Transaction``.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Union

from cosigner.chain.abi import Abi, merge_definitions
from cosigner.chain.transaction import (
    TRANSACTION_ABI_DEFINITION,
    Action,
    PermissionLevel,
    Transaction,
)
from cosigner.chains import CHAINS, get_chain_by_alias, get_chain_by_id
from cosigner.errors import MalformedRequest, SerializationError, UnknownChain

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "............1"
PLACEHOLDER_PERMISSION = "............2"

FLAG_BROADCAST = 1 << 0
FLAG_BACKGROUND = 1 << 1

_ESR_COMMON = {
    "types": [
        {"new_type_name": "chain_alias", "type": "uint8"},
        {"new_type_name": "chain_id", "type": "checksum256"},
        {"new_type_name": "request_flags", "type": "uint8"},
    ],
    "variants": [
        {"name": "variant_id", "types": ["chain_alias", "chain_id"]},
        {"name": "variant_req", "types": ["action", "action[]", "transaction", "identity"]},
    ],
    "structs": [
        {
            "name": "info_pair",
            "base": "",
            "fields": [
                {"name": "key", "type": "string"},
                {"name": "value", "type": "bytes"},
            ],
        },
        {
            "name": "signing_request",
            "base": "",
            "fields": [
                {"name": "chain_id", "type": "variant_id"},
                {"name": "req", "type": "variant_req"},
                {"name": "flags", "type": "request_flags"},
                {"name": "callback", "type": "string"},
                {"name": "info", "type": "info_pair[]"},
            ],
        },
        {
            "name": "request_signature",
            "base": "",
            "fields": [
                {"name": "signer", "type": "name"},
                {"name": "signature", "type": "signature"},
            ],
        },
    ],
}

_IDENTITY_V2 = {
    "structs": [
        {
            "name": "identity",
            "base": "",
            "fields": [{"name": "permission", "type": "permission_level?"}],
        }
    ]
}

_IDENTITY_V3 = {
    "structs": [
        {
            "name": "identity",
            "base": "",
            "fields": [
                {"name": "scope", "type": "name"},
                {"name": "permission", "type": "permission_level?"},
            ],
        }
    ]
}

# protocol version -> ABI of the request body
REQUEST_ABIS: dict[int, Abi] = {
    2: Abi(merge_definitions(TRANSACTION_ABI_DEFINITION, _ESR_COMMON, _IDENTITY_V2)),
    3: Abi(merge_definitions(TRANSACTION_ABI_DEFINITION, _ESR_COMMON, _IDENTITY_V3)),
}

REQUEST_TYPES = ("action", "action[]", "transaction", "identity")


@dataclass(frozen=True)
class RequestSignature:
    """Optional signature of the request originator (not verified here)."""
    signer: str
    signature: str


@dataclass(frozen=True)
class TransactionContext:
    """TaPoS values for requests that leave the header blank.

    Supplied by the wallet's callback (``ex``, ``rbn``, ``rid``) so the
    reconstructed header matches the one the caller signed.
    """
    expiration: str
    ref_block_num: int
    ref_block_prefix: int


@dataclass
class SigningRequest:
    """Decoded signing request.

    Attributes:
        version: Protocol version from the header byte
        chain_id: One-byte alias (int) or 64-char hex chain id
        request_type: One of REQUEST_TYPES
        payload: Request body in ABI JSON form (action data still packed)
        flags: FLAG_BROADCAST / FLAG_BACKGROUND bits
        callback: Callback URL template
        info: Ordered (key, value) metadata pairs
        signature: Originator signature, if present
    """
    version: int
    chain_id: Union[int, str]
    request_type: str
    payload: Any
    flags: int = FLAG_BROADCAST
    callback: str = ""
    info: list[tuple[str, bytes]] = field(default_factory=list)
    signature: Optional[RequestSignature] = None

    # ======================
    # Construction
    # ======================

    @classmethod
    def from_abi_value(
        cls, version: int, value: Mapping[str, Any], signature: Optional[Mapping[str, Any]] = None
    ) -> "SigningRequest":
        chain_type, chain_value = value["chain_id"]
        request_type, payload = value["req"]
        return cls(
            version=version,
            chain_id=chain_value if chain_type == "chain_alias" else chain_value.lower(),
            request_type=request_type,
            payload=payload,
            flags=value["flags"],
            callback=value["callback"],
            info=[(pair["key"], bytes.fromhex(pair["value"])) for pair in value["info"]],
            signature=RequestSignature(**signature) if signature else None,
        )

    @classmethod
    def from_actions(cls, actions: list[Action], chain: Union[int, str] = "EOS", **kwargs) -> "SigningRequest":
        """Build an ``action``/``action[]`` request from packed actions."""
        body = [a.to_dict() for a in actions]
        if len(body) == 1:
            return cls(chain_id=chain_variant(chain), request_type="action", payload=body[0], **_defaults(kwargs))
        return cls(chain_id=chain_variant(chain), request_type="action[]", payload=body, **_defaults(kwargs))

    @classmethod
    def from_transaction(cls, transaction: Transaction, chain: Union[int, str] = "EOS", **kwargs) -> "SigningRequest":
        """Build a ``transaction`` request; actions must already be packed."""
        return cls(
            chain_id=chain_variant(chain),
            request_type="transaction",
            payload=transaction.to_dict(),
            **_defaults(kwargs),
        )

    def to_abi_value(self) -> dict:
        if isinstance(self.chain_id, int):
            chain = ["chain_alias", self.chain_id]
        else:
            chain = ["chain_id", self.chain_id]
        return {
            "chain_id": chain,
            "req": [self.request_type, self.payload],
            "flags": self.flags,
            "callback": self.callback,
            "info": [{"key": key, "value": value.hex()} for key, value in self.info],
        }

    # ======================
    # Accessors
    # ======================

    @property
    def is_identity(self) -> bool:
        return self.request_type == "identity"

    @property
    def should_broadcast(self) -> bool:
        return bool(self.flags & FLAG_BROADCAST)

    def get_info(self, key: str) -> Optional[bytes]:
        for info_key, value in self.info:
            if info_key == key:
                return value
        return None

    def skeleton(self) -> Transaction:
        """Transaction as carried by the request, placeholders unresolved."""
        if self.request_type == "action":
            return Transaction(actions=[Action.from_dict(self.payload)])
        if self.request_type == "action[]":
            return Transaction(actions=[Action.from_dict(a) for a in self.payload])
        if self.request_type == "transaction":
            return Transaction.from_dict(self.payload)
        raise MalformedRequest(f"Request type {self.request_type} carries no transaction")

    def accounts(self) -> list[str]:
        """Contract accounts whose interfaces are needed to resolve the request."""
        if self.is_identity:
            return []
        return self.skeleton().accounts()


def _defaults(kwargs: dict) -> dict:
    kwargs.setdefault("version", 2)
    return kwargs


def chain_variant(chain: Union[int, str]) -> Union[int, str]:
    """Prefer the one-byte alias when the chain is well known."""
    if isinstance(chain, int):
        return chain
    if chain.upper() in CHAINS:
        return CHAINS[chain.upper()].alias
    known = get_chain_by_id(chain)
    return known.alias if known else chain.lower()


def extract_chain_id(request: SigningRequest) -> str:
    """Hex chain id the request targets.

    Raises:
        UnknownChain: alias not in the well-known table (this includes
            alias 0, used for multi-chain requests)
    """
    if isinstance(request.chain_id, int):
        chain = get_chain_by_alias(request.chain_id)
        if chain is None:
            raise UnknownChain(f"Unknown chain alias: {request.chain_id}")
        return chain.chain_id
    if len(request.chain_id) != 64:
        raise UnknownChain(f"Invalid chain id: {request.chain_id}")
    return request.chain_id


# ======================
# Placeholder resolution
# ======================


def _resolve_authorization(auth: PermissionLevel, signer: PermissionLevel) -> PermissionLevel:
    actor, permission = auth.actor, auth.permission
    if actor == PLACEHOLDER_NAME:
        actor = signer.actor
    # the actor placeholder also stands for the signer's permission in auths
    if permission in (PLACEHOLDER_NAME, PLACEHOLDER_PERMISSION):
        permission = signer.permission
    return PermissionLevel(actor, permission)


def _resolve_action(action: Action, signer: PermissionLevel, interfaces: Mapping[str, Abi]) -> Action:
    authorization = [_resolve_authorization(a, signer) for a in action.authorization]
    abi = interfaces.get(action.account)
    if abi is None:
        raise SerializationError(f"No interface available for contract {action.account}")

    changed = False

    def substitute(name: str) -> str:
        # only `name` fields are placeholders; strings equal to one are data
        nonlocal changed
        if name == PLACEHOLDER_NAME:
            changed = True
            return signer.actor
        if name == PLACEHOLDER_PERMISSION:
            changed = True
            return signer.permission
        return name

    try:
        args = abi.unpack_action_data(action.name, action.data, on_name=substitute)
    except SerializationError as e:
        raise MalformedRequest(
            f"Cannot decode {action.account}::{action.name} data: {e.message}", cause=e
        ) from e

    # untouched data keeps its original bytes
    data = args if changed else action.data
    return Action(account=action.account, name=action.name, authorization=authorization, data=data)


def resolve_placeholders(
    request: SigningRequest,
    signer: PermissionLevel,
    interfaces: Mapping[str, Abi],
    context: Optional[TransactionContext] = None,
) -> Transaction:
    """Resolve a request into a concrete transaction for ``signer``.

    Pure: ``interfaces`` must already hold the ABI of every contract the
    request references.

    Raises:
        MalformedRequest: identity request, blank header without context,
            or action data that does not match its ABI
        SerializationError: an interface is missing
    """
    if request.is_identity:
        raise MalformedRequest("Identity requests carry no transaction to cosign")

    transaction = request.skeleton()
    if transaction.has_blank_header:
        if context is None:
            raise MalformedRequest("Request has no transaction header and no TaPoS context was given")
        transaction = replace(
            transaction,
            expiration=context.expiration,
            ref_block_num=context.ref_block_num & 0xFFFF,
            ref_block_prefix=context.ref_block_prefix,
        )

    resolved = replace(
        transaction,
        context_free_actions=[
            _resolve_action(a, signer, interfaces) for a in transaction.context_free_actions
        ],
        actions=[_resolve_action(a, signer, interfaces) for a in transaction.actions],
    )
    logger.debug(f"Resolved {len(resolved.actions)} actions for {signer}")
    return resolved

"""Cosigning pipeline.

    RECEIVED -> DECODED -> RESOLVED -> SERIALIZED -> SIGNED -> COMBINED
             -> BROADCAST -> SUCCEEDED

Any stage may end the pipeline in FAILED instead. The failing error is
tagged with the stage that could not be reached. Once the cosigner has
signed, the rest of the pipeline runs to completion even if the HTTP
request that started it goes away.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from cosigner.chain.keys import KeyFormatError, PublicKey, Signature
from cosigner.chain.transaction import (
    CombinedTransaction,
    PermissionLevel,
    Transaction,
    serialize_actions,
    serialize_transaction,
    transaction_id,
)
from cosigner.cosign.identity import CosignerIdentity
from cosigner.errors import (
    CosignError,
    InternalError,
    KeyNotFoundError,
    MalformedRequest,
    SigningError,
)
from cosigner.esr import TransactionContext, decode, extract_chain_id, resolve_placeholders
from cosigner.rpc.broadcast import BroadcastClient
from cosigner.rpc.interfaces import CachedInterfaceResolver, InterfaceResolver
from cosigner.signing.base import DigestSigningRequest, SignerBackend, signing_digest

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Pipeline states."""
    RECEIVED = "received"
    DECODED = "decoded"
    RESOLVED = "resolved"
    SERIALIZED = "serialized"
    SIGNED = "signed"
    COMBINED = "combined"
    BROADCAST = "broadcast"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_NEXT_STAGE = {
    Stage.RECEIVED: Stage.DECODED,
    Stage.DECODED: Stage.RESOLVED,
    Stage.RESOLVED: Stage.SERIALIZED,
    Stage.SERIALIZED: Stage.SIGNED,
    Stage.SIGNED: Stage.COMBINED,
    Stage.COMBINED: Stage.BROADCAST,
    Stage.BROADCAST: Stage.SUCCEEDED,
}


@dataclass
class CosignRequest:
    """Inbound callback from the wallet.

    Attributes:
        encoded: Encoded signing request (``t``)
        caller_signature: Wallet's signature over the same transaction (``sig``)
        transaction_id: Id the wallet computed (``tx``), checked if given
        context: TaPoS values for requests with a blank header
        signer: Permission the wallet says it signed with (``sa``/``sp``)
        block_num: Block number hint (``bn``)
    """
    encoded: str
    caller_signature: str
    transaction_id: Optional[str] = None
    context: Optional[TransactionContext] = None
    signer: Optional[PermissionLevel] = None
    block_num: Optional[int] = None


@dataclass(frozen=True)
class CosignResult:
    """The cosigner's signature and what it was made over."""
    signature: Signature
    digest: bytes
    public_key: PublicKey


@dataclass
class CosignOutcome:
    """Where a request ended up."""
    request_id: str
    stage: Stage = Stage.RECEIVED
    transaction_id: Optional[str] = None
    error: Optional[CosignError] = None

    @property
    def succeeded(self) -> bool:
        return self.stage == Stage.SUCCEEDED


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]


# ======================
# Signing primitives
# ======================


def _cosigner_only_required_keys(identity: CosignerIdentity) -> list[str]:
    """Required keys handed to the signer backend.

    Precondition: only the cosigner's own key is listed. The caller's
    signature arrives separately and is never produced here, so the
    backend must not try to compute the full set of keys the
    transaction's authorizations require.
    """
    return [identity.public_key.to_string()]


async def cosign(
    packed_trx: bytes,
    chain_id: str,
    required_signer: CosignerIdentity,
    signer: SignerBackend,
) -> CosignResult:
    """Sign ``packed_trx`` for ``chain_id`` with the cosigner's key.

    Raises:
        KeyNotFoundError: the backend does not hold the cosigner key
        SigningError: malformed chain id or backend failure
    """
    digest = signing_digest(chain_id, packed_trx)
    result = await signer.sign(
        DigestSigningRequest(
            chain_id=chain_id,
            digest=digest.hex(),
            required_keys=_cosigner_only_required_keys(required_signer),
            metadata={"account": required_signer.account},
        )
    )
    if not result.success:
        if result.missing_keys:
            raise KeyNotFoundError(result.error or "Cosigner key not available")
        raise SigningError(result.error or "Signing failed")
    if len(result.signatures) != 1:
        raise SigningError(f"Expected one signature, got {len(result.signatures)}")

    try:
        signature = Signature.from_string(result.signatures[0])
    except KeyFormatError as e:
        raise SigningError(f"Signer returned an invalid signature: {e}", cause=e) from e
    return CosignResult(signature=signature, digest=digest, public_key=required_signer.public_key)


def combine(packed_trx: bytes, caller_signature: str, cosigner_signature: Signature) -> CombinedTransaction:
    """Pair the packed transaction with both signatures, caller's first.

    The caller's signature is only checked for format. Whether it carries
    the right authority is decided by the chain when the transaction is
    pushed.

    Raises:
        MalformedRequest: caller signature is not a valid SIG_K1_ string
    """
    try:
        caller = Signature.from_string(caller_signature)
    except KeyFormatError as e:
        raise MalformedRequest(f"Invalid caller signature: {e}", cause=e) from e
    return CombinedTransaction(
        packed_trx=packed_trx,
        signatures=(caller.to_string(), cosigner_signature.to_string()),
    )


# ======================
# Pipeline
# ======================


class CosigningEngine:
    """Runs one cosign pipeline per request. Holds no per-request state."""

    def __init__(
        self,
        identity: CosignerIdentity,
        signer: SignerBackend,
        interfaces: Union[InterfaceResolver, CachedInterfaceResolver],
        broadcaster: BroadcastClient,
    ):
        self.identity = identity
        self.signer = signer
        self.interfaces = interfaces
        self.broadcaster = broadcaster
        self._pending: set[asyncio.Task] = set()

    async def run(self, request: CosignRequest, request_id: Optional[str] = None) -> CosignOutcome:
        """Run the pipeline. Failures are reported in the outcome, never raised."""
        outcome = CosignOutcome(request_id=request_id or new_request_id())
        logger.info(
            f"[{outcome.request_id}] Cosign request received"
            + (f" from {request.signer}" if request.signer else "")
            + (f" (block {request.block_num})" if request.block_num is not None else "")
        )

        try:
            packed_trx, chain_id = await self._prepare(request, outcome)
            cosigned = await cosign(packed_trx, chain_id, self.identity, self.signer)
            outcome.stage = Stage.SIGNED
        except Exception as e:
            return self._fail(outcome, e)

        task = asyncio.ensure_future(self._finish(request, packed_trx, cosigned, outcome))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return await asyncio.shield(task)

    async def _prepare(self, request: CosignRequest, outcome: CosignOutcome) -> tuple[bytes, str]:
        signing_request = decode(request.encoded)
        chain_id = extract_chain_id(signing_request)
        if not signing_request.should_broadcast:
            logger.info(f"[{outcome.request_id}] Request has the broadcast flag unset, pushing anyway")
        outcome.stage = Stage.DECODED

        interfaces = await self.interfaces.resolve_interfaces(signing_request.accounts())
        transaction = resolve_placeholders(
            signing_request, self.identity.permission_level, interfaces, request.context
        )
        self._check_authorized(transaction, outcome)
        outcome.stage = Stage.RESOLVED

        packed_trx = serialize_transaction(serialize_actions(transaction, interfaces))
        tx_id = transaction_id(packed_trx)
        if request.transaction_id and request.transaction_id.lower() != tx_id:
            raise MalformedRequest(
                f"Transaction id mismatch: caller signed {request.transaction_id}, rebuilt {tx_id}"
            )
        outcome.transaction_id = tx_id
        outcome.stage = Stage.SERIALIZED
        return packed_trx, chain_id

    def _check_authorized(self, transaction: Transaction, outcome: CosignOutcome) -> None:
        own = self.identity.permission_level
        if not any(own in action.authorization for action in transaction.actions):
            logger.warning(f"[{outcome.request_id}] No action in the transaction is authorized by {own}")

    async def _finish(
        self,
        request: CosignRequest,
        packed_trx: bytes,
        cosigned: CosignResult,
        outcome: CosignOutcome,
    ) -> CosignOutcome:
        try:
            combined = combine(packed_trx, request.caller_signature, cosigned.signature)
            outcome.stage = Stage.COMBINED
            outcome.transaction_id = await self.broadcaster.submit(combined)
            outcome.stage = Stage.BROADCAST
        except Exception as e:
            return self._fail(outcome, e)

        outcome.stage = Stage.SUCCEEDED
        logger.info(f"[{outcome.request_id}] Cosigned and pushed {outcome.transaction_id}")
        return outcome

    def _fail(self, outcome: CosignOutcome, error: Exception) -> CosignOutcome:
        """Record a failure. Called from inside the ``except`` that caught it."""
        if not isinstance(error, CosignError):
            logger.exception(f"[{outcome.request_id}] Unexpected error after {outcome.stage.value}")
            error = InternalError(f"{type(error).__name__}: {error}", cause=error)

        error.stage = _NEXT_STAGE.get(outcome.stage, outcome.stage).value
        cause = f" (cause: {error.cause!r})" if error.cause is not None else ""
        log = logger.warning if error.client_error else logger.error
        log(f"[{outcome.request_id}] Failed at {error.stage}: {error.kind}: {error.message}{cause}")

        outcome.error = error
        outcome.stage = Stage.FAILED
        return outcome

    async def drain(self) -> None:
        """Wait for pipelines that are past signing to finish."""
        if self._pending:
            logger.info(f"Waiting for {len(self._pending)} signed transactions to finish")
            await asyncio.gather(*self._pending, return_exceptions=True)

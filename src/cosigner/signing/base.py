"""Base interfaces for transaction signing.

Signing flow:
1. Serialize the transaction
2. Compute the chain-bound digest (see signing_digest)
3. Submit the digest to a signer with the public keys that must sign
4. Signer returns signatures (private keys never leave the backend)
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from cosigner.errors import KeyNotFoundError, SigningError

logger = logging.getLogger(__name__)

__all__ = [
    "DigestSigningRequest",
    "KeyNotFoundError",
    "SignatureResult",
    "SignerBackend",
    "SignerType",
    "SigningError",
    "signing_digest",
]

# Context-free data is never sent, so its hash is always 32 zero bytes
EMPTY_CONTEXT_FREE_HASH = bytes(32)


class SignerType(str, Enum):
    """Type of signing backend."""
    LOCAL = "local"           # Private key in memory (hot key)


def signing_digest(chain_id: str, packed_trx: bytes) -> bytes:
    """sha256(chain_id || packed_trx || context_free_data_hash).

    Raises:
        SigningError: chain_id is not 32 bytes of hex
    """
    try:
        chain = bytes.fromhex(chain_id)
    except (TypeError, ValueError) as e:
        raise SigningError(f"Malformed chain id: {chain_id!r}", cause=e) from e
    if len(chain) != 32:
        raise SigningError(f"Chain id must be 32 bytes, got {len(chain)}")
    return hashlib.sha256(chain + packed_trx + EMPTY_CONTEXT_FREE_HASH).digest()


@dataclass
class DigestSigningRequest:
    """Request to sign a transaction digest.

    Attributes:
        chain_id: Chain id the digest is bound to (hex)
        digest: 32-byte signing digest as hex string
        required_keys: Public keys (PUB_K1_ or legacy EOS format) that must sign
        metadata: Optional metadata for audit logging
    """
    chain_id: str
    digest: str
    required_keys: list[str]
    metadata: Optional[dict] = None


@dataclass
class SignatureResult:
    """Result of signing operation.

    Attributes:
        success: Whether signing succeeded
        signatures: SIG_K1_ strings, one per required key, in request order
        missing_keys: Required keys the backend does not hold
        error: Error message if signing failed
    """
    success: bool
    signatures: list[str] = field(default_factory=list)
    missing_keys: list[str] = field(default_factory=list)
    error: Optional[str] = None


class SignerBackend(ABC):
    """Abstract base class for signing backends.

    Implementations should NEVER expose raw private keys.
    All signing operations return signatures only.
    """

    def __init__(self, signer_type: SignerType):
        self.signer_type = signer_type

    @abstractmethod
    async def sign(self, request: DigestSigningRequest) -> SignatureResult:
        """Sign a digest with every required key.

        Args:
            request: Signing request with digest and required public keys

        Returns:
            SignatureResult with one signature per required key
        """
        pass

    @abstractmethod
    async def get_available_keys(self) -> list[str]:
        """Public keys (PUB_K1_ format) this backend can sign with."""
        pass

    async def health_check(self) -> bool:
        """Check if the signing backend is available.

        Returns:
            True if backend is ready to sign
        """
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value})"

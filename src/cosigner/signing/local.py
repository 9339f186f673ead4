"""Local signing backend.

Holds K1 private keys in memory. The cosigner key is a hot key by
nature: it is used for every request the service accepts.
"""

import logging
from typing import Iterable, Optional

from cosigner.chain.keys import KeyFormatError, PrivateKey, PublicKey
from cosigner.signing.base import (
    DigestSigningRequest,
    SignatureResult,
    SignerBackend,
    SignerType,
)

logger = logging.getLogger(__name__)


class LocalSigner(SignerBackend):
    """Local signing backend using in-memory private keys.

    Keys are indexed by their PUB_K1_ public key so that required keys
    given in the legacy EOS format still match.
    """

    def __init__(self, keys: Iterable[PrivateKey] = ()):
        super().__init__(SignerType.LOCAL)
        self._keys: dict[str, PrivateKey] = {}
        for key in keys:
            self.add_key(key)

    @classmethod
    def from_strings(cls, *secrets: Optional[str]) -> "LocalSigner":
        """Build from WIF / PVT_K1_ strings, skipping empty values.

        Raises:
            KeyFormatError: a non-empty value is not a valid private key
        """
        return cls(PrivateKey.from_string(s) for s in secrets if s)

    def add_key(self, key: PrivateKey) -> str:
        public = key.public_key.to_string()
        self._keys[public] = key
        logger.info(f"Loaded signing key {public}")
        return public

    def _get_key(self, public_key: str) -> Optional[PrivateKey]:
        try:
            normalized = PublicKey.from_string(public_key).to_string()
        except KeyFormatError:
            return None
        return self._keys.get(normalized)

    async def sign(self, request: DigestSigningRequest) -> SignatureResult:
        """Sign the digest with every required key."""
        keys = [(required, self._get_key(required)) for required in request.required_keys]
        missing = [required for required, key in keys if key is None]
        if missing:
            return SignatureResult(
                success=False,
                missing_keys=missing,
                error=f"No signing key for {', '.join(missing)}",
            )

        try:
            digest = bytes.fromhex(request.digest)
            signatures = [key.sign_digest(digest).to_string() for _, key in keys]
        except (KeyFormatError, ValueError) as e:
            logger.error(f"Local signing failed: {e}")
            return SignatureResult(success=False, error=str(e))

        return SignatureResult(success=True, signatures=signatures)

    async def get_available_keys(self) -> list[str]:
        return list(self._keys)

    async def health_check(self) -> bool:
        """Healthy when at least one key is loaded."""
        return bool(self._keys)

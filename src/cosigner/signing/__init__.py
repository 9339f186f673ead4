"""Signing backends.

Private keys never leave the backend; callers hand it a digest and the
public keys that must sign it.
"""

from cosigner.signing.base import (
    DigestSigningRequest,
    SignatureResult,
    SignerBackend,
    SignerType,
    signing_digest,
)
from cosigner.signing.factory import get_signer, get_signer_info, reset_signer
from cosigner.signing.local import LocalSigner

__all__ = [
    "DigestSigningRequest",
    "LocalSigner",
    "SignatureResult",
    "SignerBackend",
    "SignerType",
    "get_signer",
    "get_signer_info",
    "reset_signer",
    "signing_digest",
]

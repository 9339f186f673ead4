"""Cosigning pipeline and the identity it signs as."""

from cosigner.cosign.engine import (
    CosignOutcome,
    CosignRequest,
    CosignResult,
    CosigningEngine,
    Stage,
    combine,
    cosign,
)
from cosigner.cosign.identity import CosignerIdentity

__all__ = [
    "CosignOutcome",
    "CosignRequest",
    "CosignResult",
    "CosignerIdentity",
    "CosigningEngine",
    "Stage",
    "combine",
    "cosign",
]

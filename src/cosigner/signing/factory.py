"""Signer factory.

Creates the signing backend from configuration. The cosigner key is
loaded once and the backend is shared by every request.
"""

import logging
from typing import Optional

from cosigner.chain.keys import KeyFormatError
from cosigner.config import get_settings
from cosigner.errors import SigningError
from cosigner.signing.base import SignerBackend

logger = logging.getLogger(__name__)

_signer_instance: Optional[SignerBackend] = None


def get_signer() -> SignerBackend:
    """Get the configured signer instance.

    Returns singleton instance for the configured signer type.

    Raises:
        SigningError: COSIGNER_PRIVATE_KEY is set but cannot be parsed
    """
    global _signer_instance

    if _signer_instance is not None:
        return _signer_instance

    from cosigner.signing.local import LocalSigner

    settings = get_settings()
    logger.info("Initializing local signer")
    try:
        _signer_instance = LocalSigner.from_strings(settings.cosigner_private_key)
    except KeyFormatError as e:
        raise SigningError(f"Invalid COSIGNER_PRIVATE_KEY: {e}", cause=e) from e

    if not settings.cosigner_private_key:
        logger.warning("COSIGNER_PRIVATE_KEY not set, signer has no keys")
    return _signer_instance


def reset_signer():
    """Reset the signer instance (for testing)."""
    global _signer_instance
    _signer_instance = None


async def get_signer_info() -> dict:
    """Get information about the current signer configuration.

    Returns:
        Dict with signer type, health status, and available keys
    """
    signer = get_signer()
    health = await signer.health_check()

    return {
        "type": signer.signer_type.value,
        "healthy": health,
        "class": signer.__class__.__name__,
        "keys": await signer.get_available_keys(),
    }

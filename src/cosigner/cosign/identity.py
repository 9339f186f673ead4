"""The account and key this service cosigns as."""

from dataclasses import dataclass

from cosigner.chain.keys import KeyFormatError, PrivateKey, PublicKey
from cosigner.chain.serializer import string_to_name
from cosigner.chain.transaction import PermissionLevel
from cosigner.config import Settings
from cosigner.errors import SerializationError, SigningError


@dataclass(frozen=True)
class CosignerIdentity:
    """Who the cosigner is. Built once at start-up, never mutated."""
    account: str
    permission: str
    public_key: PublicKey

    @property
    def permission_level(self) -> PermissionLevel:
        return PermissionLevel(self.account, self.permission)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CosignerIdentity":
        """Derive the identity from COSIGNER_* settings.

        Raises:
            SigningError: account, permission or key missing or invalid
        """
        if not settings.has_cosigner_key:
            raise SigningError("COSIGNER_ACCOUNT and COSIGNER_PRIVATE_KEY must be set")
        try:
            string_to_name(settings.cosigner_account)
            string_to_name(settings.cosigner_permission)
        except SerializationError as e:
            raise SigningError(f"Invalid cosigner permission: {e.message}", cause=e) from e
        try:
            key = PrivateKey.from_string(settings.cosigner_private_key)
        except KeyFormatError as e:
            raise SigningError(f"Invalid COSIGNER_PRIVATE_KEY: {e}", cause=e) from e
        return cls(
            account=settings.cosigner_account,
            permission=settings.cosigner_permission,
            public_key=key.public_key,
        )

    def __str__(self) -> str:
        return f"{self.account}@{self.permission} ({self.public_key})"

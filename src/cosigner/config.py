"""Application configuration using pydantic-settings.

The cosigner key is read once at start-up; see cosign.identity for the
immutable identity built from these values.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Cosigner identity
    # ======================
    cosigner_account: str = Field(default="", description="Account that adds the second signature")
    cosigner_permission: str = Field(default="cosign", description="Permission level used for cosigning")
    cosigner_private_key: Optional[str] = Field(
        default=None, description="Cosigner private key (WIF or PVT_K1_ format)"
    )

    # ======================
    # Chain API
    # ======================
    api_url: str = Field(
        default="https://eos.greymass.com", description="Chain API node base URL"
    )
    rpc_timeout: float = Field(default=10.0, description="Chain API request timeout in seconds")
    abi_cache_ttl: float = Field(
        default=0.0, description="Seconds to cache contract ABIs (0 = no caching)"
    )

    # ======================
    # HTTP server
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8080, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_cosigner_key(self) -> bool:
        """Check if a cosigner key and account are configured."""
        return bool(self.cosigner_private_key and self.cosigner_account)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "api_url": self._redact_url(self.api_url),
            "rpc_timeout": self.rpc_timeout,
            "abi_cache_ttl": self.abi_cache_ttl,
            "cosigner": {
                "account": self.cosigner_account or "(not set)",
                "permission": self.cosigner_permission,
                "private_key": "***" if self.cosigner_private_key else "(not set)",
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact credentials embedded in a URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

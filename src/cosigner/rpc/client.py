"""Chain API client.

Thin wrapper over the node's ``/v1/chain/*`` HTTP endpoints. One
``LedgerRpc`` (and so one ``httpx.AsyncClient`` connection pool) is shared
by every request the service handles.
"""

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class RpcError(Exception):
    """A chain API call failed.

    Attributes:
        status_code: HTTP status of the response, None for transport errors
        error: Parsed ``error`` object from the node's response body, if any
    """

    def __init__(self, message: str, status_code: Optional[int] = None, error: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error = error or {}

    @property
    def reason(self) -> str:
        """Most specific human readable reason the node gave."""
        details = [
            d.get("message", "") for d in self.error.get("details", []) if isinstance(d, dict)
        ]
        details = [d for d in details if d]
        if details:
            return "; ".join(details)
        return self.error.get("what") or self.message


class LedgerRpc:
    """Async client for one chain API node."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Node base URL, e.g. https://eos.greymass.com
            timeout: Per request timeout in seconds
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def _post(self, path: str, body: dict) -> Any:
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as e:
            logger.warning(f"{path} request failed: {type(e).__name__}: {e}")
            raise RpcError(f"{path}: {type(e).__name__}: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            error = payload.get("error") if isinstance(payload, dict) else None
            if not isinstance(error, dict):
                error = {}
            name = error.get("name") or f"HTTP {response.status_code}"
            raise RpcError(
                f"{path} returned {response.status_code}: {name}",
                status_code=response.status_code,
                error=error,
            )
        if payload is None:
            raise RpcError(f"{path} returned a non-JSON body", status_code=response.status_code)
        return payload

    async def get_abi(self, account: str) -> dict:
        """Fetch ``{"account_name": ..., "abi": {...}}`` for a contract account."""
        return await self._post("/v1/chain/get_abi", {"account_name": account})

    async def get_info(self) -> dict:
        return await self._post("/v1/chain/get_info", {})

    async def push_transaction(self, signatures: list[str], packed_trx: str) -> dict:
        """Submit a signed transaction.

        Args:
            signatures: Signature strings (SIG_K1_...)
            packed_trx: Hex of the packed transaction
        """
        return await self._post(
            "/v1/chain/push_transaction",
            {
                "signatures": signatures,
                "compression": 0,
                "packed_context_free_data": "",
                "packed_trx": packed_trx,
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

"""Pushes fully signed transactions to the chain."""

import logging

from cosigner.chain.transaction import CombinedTransaction
from cosigner.errors import BroadcastError
from cosigner.rpc.client import LedgerRpc, RpcError

logger = logging.getLogger(__name__)


class BroadcastClient:
    """Submits combined transactions. There are no retries: a failed push
    is reported to the caller as is."""

    def __init__(self, rpc: LedgerRpc):
        self.rpc = rpc

    async def submit(self, combined: CombinedTransaction) -> str:
        """Push ``combined`` and return the transaction id.

        Raises:
            BroadcastError: transport failure, timeout or node rejection
        """
        try:
            response = await self.rpc.push_transaction(
                list(combined.signatures), combined.packed_trx.hex()
            )
        except RpcError as e:
            name = e.error.get("name")
            raise BroadcastError(
                f"Transaction rejected: {e.reason}" if e.status_code else f"Broadcast failed: {e.message}",
                cause=e,
                status_code=e.status_code,
                error_name=name,
            ) from e

        tx_id = response.get("transaction_id") if isinstance(response, dict) else None
        if not tx_id:
            tx_id = combined.transaction_id
        elif tx_id != combined.transaction_id:
            logger.warning(f"Node reported transaction id {tx_id}, expected {combined.transaction_id}")
        logger.info(f"Broadcast transaction {tx_id}")
        return tx_id

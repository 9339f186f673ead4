"""Health check endpoints."""

import logging

from fastapi import APIRouter, Request

from cosigner.rpc import RpcError
from cosigner.signing import get_signer_info

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "cosigner"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration, signer and chain info."""
    state = request.app.state
    signer = await get_signer_info()

    chain = {"reachable": False}
    try:
        info = await state.rpc.get_info()
        chain = {
            "reachable": True,
            "chain_id": info.get("chain_id"),
            "head_block_num": info.get("head_block_num"),
        }
    except RpcError as e:
        logger.warning(f"Chain API health check failed: {e.message}")
        chain["error"] = e.reason

    healthy = signer["healthy"] and chain["reachable"]
    return {
        "status": "healthy" if healthy else "degraded",
        "service": "cosigner",
        "version": "0.1.0",
        "cosigner": {
            "permission": str(state.identity.permission_level),
            "public_key": state.identity.public_key.to_string(),
        },
        "signer": signer,
        "chain": chain,
        "config": state.settings.get_safe_dict(),
    }

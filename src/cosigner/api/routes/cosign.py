"""Wallet callback endpoint.

The wallet signs the transaction described by a signing request and
POSTs the callback here; the service adds its own signature and pushes
the transaction.
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from cosigner.chain.transaction import PermissionLevel
from cosigner.cosign import CosignOutcome, CosignRequest, CosigningEngine, Stage
from cosigner.errors import CosignError, MalformedRequest
from cosigner.esr import TransactionContext

logger = logging.getLogger(__name__)

router = APIRouter()

IntLike = Union[int, str]


class CallbackPayload(BaseModel):
    """ESR callback body.

    Wallets send every value as a string; unknown keys (``sig0``,
    ``sig1``, ...) are ignored.
    """
    model_config = ConfigDict(extra="ignore")

    t: str = Field(description="Encoded signing request")
    sig: str = Field(description="Wallet's signature (SIG_K1_...)")
    tx: Optional[str] = Field(default=None, description="Transaction id the wallet signed")
    bn: Optional[IntLike] = Field(default=None, description="Reference block number")
    sa: Optional[str] = Field(default=None, description="Signer actor")
    sp: Optional[str] = Field(default=None, description="Signer permission")
    a: Optional[str] = Field(default=None, description="Signer actor (older wallets)")
    ex: Optional[str] = Field(default=None, description="Transaction expiration")
    rbn: Optional[IntLike] = Field(default=None, description="ref_block_num")
    rid: Optional[IntLike] = Field(default=None, description="ref_block_prefix")


class CosignResponse(BaseModel):
    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    stage: Optional[str] = None
    message: Optional[str] = None


def _to_int(name: str, value: IntLike) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedRequest(f"'{name}' must be an integer, got {value!r}") from None


def to_cosign_request(payload: CallbackPayload) -> CosignRequest:
    """Translate the callback body into a pipeline request.

    Raises:
        MalformedRequest: TaPoS fields are partial or not numeric
    """
    tapos = (payload.ex, payload.rbn, payload.rid)
    context = None
    if all(v is not None for v in tapos):
        context = TransactionContext(
            expiration=payload.ex,
            ref_block_num=_to_int("rbn", payload.rbn),
            ref_block_prefix=_to_int("rid", payload.rid),
        )
    elif any(v is not None for v in tapos):
        raise MalformedRequest("'ex', 'rbn' and 'rid' must be given together")

    actor = payload.sa or payload.a
    signer = PermissionLevel(actor, payload.sp or "active") if actor else None
    return CosignRequest(
        encoded=payload.t,
        caller_signature=payload.sig,
        transaction_id=payload.tx,
        context=context,
        signer=signer,
        block_num=_to_int("bn", payload.bn) if payload.bn is not None else None,
    )


def status_for(error: CosignError) -> int:
    """HTTP status for a failed pipeline."""
    if error.client_error:
        return 400
    if error.downstream:
        return 502
    return 500


def error_response(error: CosignError) -> JSONResponse:
    body = CosignResponse(
        success=False,
        error=error.kind,
        stage=error.stage,
        message=error.message,
    )
    return JSONResponse(status_code=status_for(error), content=body.model_dump(exclude_none=True))


@router.post("/", response_model=CosignResponse, response_model_exclude_none=True)
async def handle_callback(request: Request, payload: CallbackPayload):
    """Cosign and broadcast the transaction the wallet signed."""
    engine: CosigningEngine = request.app.state.engine

    try:
        cosign_request = to_cosign_request(payload)
    except MalformedRequest as e:
        e.stage = Stage.DECODED.value
        logger.warning(f"Rejected callback: {e.message}")
        return error_response(e)

    outcome: CosignOutcome = await engine.run(cosign_request)
    if not outcome.succeeded:
        return error_response(outcome.error)

    return CosignResponse(success=True, transaction_id=outcome.transaction_id)

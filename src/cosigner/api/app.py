"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from cosigner.config import Settings, get_settings
from cosigner.cosign import CosignerIdentity, CosigningEngine, Stage
from cosigner.rpc import BroadcastClient, LedgerRpc, create_interface_resolver
from cosigner.signing import get_signer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    settings: Settings = app.state.settings
    identity = CosignerIdentity.from_settings(settings)
    signer = get_signer()
    if identity.public_key.to_string() not in await signer.get_available_keys():
        logger.warning(f"Signer does not hold the key for {identity}")

    rpc = LedgerRpc(
        settings.api_url,
        timeout=settings.rpc_timeout,
        transport=app.state.rpc_transport,
    )
    app.state.rpc = rpc
    app.state.identity = identity
    app.state.engine = CosigningEngine(
        identity=identity,
        signer=signer,
        interfaces=create_interface_resolver(rpc, settings.abi_cache_ttl),
        broadcaster=BroadcastClient(rpc),
    )
    logger.info(f"Cosigning as {identity} via {rpc.base_url}")
    yield
    # Shutdown
    await app.state.engine.drain()
    await rpc.aclose()


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Bad JSON or a body missing ``t``/``sig`` is the caller's fault."""
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "MalformedRequest",
            "stage": Stage.DECODED.value,
            "message": f"Invalid callback body: {problems}",
        },
    )


def create_app(
    settings: Optional[Settings] = None,
    rpc_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings override (defaults to get_settings())
        rpc_transport: Transport for the chain API client (tests use httpx.MockTransport)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="EOSIO Cosigner",
        description="Adds a cosignature to wallet-signed transactions and pushes them",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_url=None if settings.is_production else "/openapi.json",
    )
    app.state.settings = settings
    app.state.rpc_transport = rpc_transport

    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Register routes
    from cosigner.api.routes import cosign, health

    app.include_router(health.router, tags=["Health"])
    app.include_router(cosign.router, tags=["Cosign"])

    return app

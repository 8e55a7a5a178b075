"""FastAPI application for Tiergate."""

import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tiergate import __version__
from tiergate.config import get_settings
from tiergate.exceptions import GatewayError, InvalidParametersError, format_timestamp
from tiergate.logging import setup_logging
from tiergate.metrics import metrics
from tiergate.models import (
    Admission,
    AuthorizeRequest,
    AuthorizeResponse,
    ErrorResponse,
    UsageResponse,
)
from tiergate.repository import get_store
from tiergate.service import get_service

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    # Startup
    setup_logging()
    logger.info("tiergate_starting", version=__version__)

    store = get_store()
    try:
        await store.connect()
    except Exception as e:
        logger.error("store_connection_failed", error=str(e))
        raise

    yield

    # Shutdown
    await store.disconnect()
    logger.info("tiergate_stopped")


app = FastAPI(
    title="Tiergate Access Gateway API",
    version=__version__,
    description="Tiered API key classification, quotas and capability gating",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", get_settings().api_key_header],
    max_age=86400,
)


# === Middleware ===


@app.middleware("http")
async def metrics_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Record HTTP metrics for each request."""
    if not get_settings().metrics_enabled:
        return await call_next(request)

    start_time = time.perf_counter()

    response: Response = await call_next(request)

    duration = time.perf_counter() - start_time
    endpoint = request.url.path
    method = request.method

    metrics.http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration.labels(
        method=method,
        endpoint=endpoint,
    ).observe(duration)

    return response


# === Gateway dependencies ===


def get_api_key(request: Request) -> Optional[str]:
    """Raw API key from the configured request header."""
    return request.headers.get(get_settings().api_key_header)


async def require_admission(
    body: Optional[AuthorizeRequest] = None,
    api_key: Optional[str] = Depends(get_api_key),
) -> Admission:
    """Run the gateway for an operation route.

    The returned admission carries ``effective_privileged`` for the
    operation executor downstream.
    """
    wants_privileged = bool(body and body.use_real_hardware)
    return await get_service().admit(api_key, wants_privileged)


# === Health endpoints ===


@app.get("/health", tags=["Health"])
async def health() -> dict[str, Any]:
    """Health check endpoint."""
    store = get_store()
    store_healthy = await store.health_check()

    status = "healthy" if store_healthy else "degraded"

    return {
        "status": status,
        "version": __version__,
        "checks": {
            "store": "ok" if store_healthy else "error",
        },
    }


@app.get("/ready", tags=["Health"])
async def ready() -> dict[str, str]:
    """Readiness check endpoint."""
    store = get_store()
    if not await store.health_check():
        raise HTTPException(status_code=503, detail="Counter store not available")
    return {"status": "ready"}


# === Metrics endpoint ===


@app.get("/metrics", tags=["Observability"])
async def prometheus_metrics() -> Response:
    """Prometheus metrics endpoint."""
    if not get_settings().metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics disabled")

    store = get_store()
    if await store.health_check():
        metrics.tracked_keys.set(await store.tracked_keys())
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# === Service info endpoints ===


@app.get("/v1", tags=["Info"])
async def root(request: Request) -> dict[str, Any]:
    """Service description."""
    return {
        "name": "Tiergate Access Gateway",
        "version": __version__,
        "status": "operational",
        "base_url": f"{str(request.base_url).rstrip('/')}/v1",
        "endpoints": {
            "general": ["/v1/ping", "/v1/status"],
            "gateway": ["/v1/gateway/authorize", "/v1/gateway/usage"],
        },
        "timestamp": format_timestamp(time.time()),
    }


@app.get("/v1/ping", tags=["Info"])
async def ping() -> dict[str, str]:
    """Liveness ping."""
    return {"status": "ok", "timestamp": format_timestamp(time.time())}


@app.get("/v1/status", tags=["Info"])
async def service_status() -> dict[str, Any]:
    """Service status."""
    return {
        "status": "operational",
        "version": __version__,
        "store_backend": get_settings().store_backend,
    }


# === Gateway endpoints ===


@app.post(
    "/v1/gateway/authorize",
    response_model=AuthorizeResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
    tags=["Gateway"],
)
async def authorize(admission: Admission = Depends(require_admission)) -> JSONResponse:
    """Check the caller's key, consume quota and gate the privileged capability."""
    response = AuthorizeResponse.from_admission(admission)
    return JSONResponse(
        status_code=200,
        content=response.model_dump(by_alias=True),
        headers=admission.headers(),
    )


@app.get(
    "/v1/gateway/usage",
    response_model=UsageResponse,
    responses={401: {"model": ErrorResponse}},
    tags=["Gateway"],
)
async def usage(api_key: Optional[str] = Depends(get_api_key)) -> UsageResponse:
    """Current quota usage of the caller's key. Does not consume quota."""
    tier, key_usage = await get_service().usage(api_key)
    return UsageResponse.build(tier, key_usage)


# === Error handlers ===


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Render gateway rejections as ``{"error", "code"}`` bodies."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies."""
    logger.info("invalid_parameters", path=request.url.path, errors=len(exc.errors()))
    error = InvalidParametersError()
    return JSONResponse(status_code=error.status_code, content=error.to_body())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("unhandled_exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


def create_app() -> FastAPI:
    """Factory function to create the app."""
    return app

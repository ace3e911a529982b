"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events for the shared Keap client, error handlers that render
``{"error": ...}`` bodies, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.keap_sync.api.deps import build_keap_client
from src.keap_sync.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.keap_sync.api.v1.router import router as v1_router
from src.keap_sync.config import get_settings
from src.keap_sync.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.keap_sync.core.rate_limit import TokenBucket
from src.keap_sync.crm.client import CRMError
from src.keap_sync.crm.field_mapping import validate_field_map
from src.keap_sync.payments.stripe_client import PaymentsError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: Sentry and the shared Keap client on startup, close on shutdown."""
    settings = get_settings()
    configure_structlog()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    app.state.tag_limiter = TokenBucket(rate=settings.KEAP_TAG_RATE_PER_SECOND)
    app.state.keap_client = None

    if settings.KEAP_ACCESS_TOKEN:
        app.state.keap_client = build_keap_client(settings)
        # Startup continues on a mismatch; the warning names the bad fields.
        try:
            await validate_field_map(app.state.keap_client, settings.KEAP_CUSTOM_FIELDS)
        except Exception:
            logger.warning("startup.field_map_validation_failed", exc_info=True)
    else:
        logger.warning("startup.keap_not_configured")

    logger.info("startup.complete", environment=settings.ENVIRONMENT.value)

    yield

    client = getattr(app.state, "keap_client", None)
    if client is not None:
        await client.aclose()


# ── Error rendering ──────────────────────────────────────────────────────────


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        detail = " ".join(part for part in (location, errors[0].get("msg", "")) if part)
        message = f"{message}: {detail}"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


async def _upstream_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "request.upstream_error",
        path=request.url.path,
        error=str(exc),
        upstream_status=getattr(exc, "status_code", None),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": str(exc)},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Destiny Cards Keap Sync",
        version="0.1.0",
        description="Stripe checkout to Keap CRM order sync and fulfillment tracking",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware (answers OPTIONS preflight for the dashboard)
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(CRMError, _upstream_exception_handler)
    app.add_exception_handler(PaymentsError, _upstream_exception_handler)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()

"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from homecare.core.config import settings
from homecare.core.database import engine
from homecare.core.logging import log_warning, setup_logging
from homecare.core.metrics import get_content_type, get_metrics, set_app_info
from homecare.core.middleware import (
    MetricsMiddleware,
    CorrelationIdMiddleware,
    TracingMiddleware,
    RequestLoggingMiddleware,
)
from homecare.core.redis import redis_client
from homecare.core.tracing import setup_tracing, shutdown_tracing
from homecare.modules.admin import router as admin_router
from homecare.modules.usage import router as usage_router

logger = logging.getLogger(__name__)

ENVIRONMENT = "development" if settings.DEBUG else "production"


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await redis_client.aclose()
    await engine.dispose()
    shutdown_tracing()


app = FastAPI(
    lifespan=lifespan,
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## HomeCare Subscription Usage API

Tracks how much of their subscription tier each customer has used in the
current billing period, and warns as limits are approached.

### Authentication

All endpoints except `/health` and `/metrics` require a JWT Bearer token.

```
Authorization: Bearer <access_token>
```
    """,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    openapi_tags=[
        {
            "name": "health",
            "description": "Health check endpoints",
        },
        {
            "name": "usage",
            "description": "Customer usage tracking - services, discounts, quotas, period reset",
        },
        {
            "name": "admin",
            "description": "Platform usage statistics",
        },
    ],
)

# Set up logging with correlation IDs
setup_logging(
    level="INFO" if not settings.DEBUG else "DEBUG",
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

# Set up distributed tracing
setup_tracing(
    service_name=settings.PROJECT_NAME,
    service_version=settings.VERSION,
    environment=ENVIRONMENT,
    otlp_endpoint=settings.OTLP_ENDPOINT,
    enable_console_export=settings.DEBUG,
)

# Set application info for metrics
set_app_info(version=settings.VERSION, environment=ENVIRONMENT)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware, log_request_body=False)
app.add_middleware(TracingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report unparseable requests as 400, like any other invalid input."""
    log_warning(
        logger,
        f"Validation error for {request.url.path}",
        errors=len(exc.errors()),
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict: Health status with "healthy" or "unhealthy" value.
    """
    return {"status": "healthy"}


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus exposition of the application registry."""
    return Response(content=get_metrics(), media_type=get_content_type())


# Include routers
app.include_router(usage_router, prefix=settings.API_PREFIX)
app.include_router(admin_router, prefix=settings.API_PREFIX)

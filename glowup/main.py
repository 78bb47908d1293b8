import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from glowup.api.routes import health, recommendations
from glowup.config import settings
from glowup.errors import CatalogConfigError, CatalogUnavailableError
from glowup.logging import configure_logging

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Connect to Temporal once per process when workflow mode is on."""
    app.state.temporal_client = None
    if settings.use_temporal:
        from glowup.worker import create_temporal_client

        app.state.temporal_client = await create_temporal_client()
        logger.info("temporal_client_connected", address=settings.temporal_address)
    yield


app = FastAPI(
    title="GlowUp API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url=None,
    lifespan=lifespan,
)


def _with_request_id(request: Request, response: JSONResponse) -> JSONResponse:
    response.headers["X-Request-ID"] = getattr(
        request.state, "request_id", request.headers.get("X-Request-ID", "")
    )
    return response


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Attach a request ID to every request for log correlation.

    Bound into structlog context vars and echoed in the X-Request-ID header
    so clients can report it.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Flatten pydantic errors into the single ErrorResponse shape."""
    messages = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    return _with_request_id(
        request,
        JSONResponse(
            status_code=422,
            content={
                "error": "validation_error",
                "message": "; ".join(messages),
                "retryable": False,
            },
        ),
    )


@app.exception_handler(CatalogUnavailableError)
async def catalog_unavailable_handler(
    request: Request, exc: CatalogUnavailableError
) -> JSONResponse:
    logger.error("catalog_unavailable", path=request.url.path, error=str(exc))
    return _with_request_id(
        request,
        JSONResponse(
            status_code=503,
            content={
                "error": "catalog_unavailable",
                "message": "The product catalog is temporarily unavailable",
                "retryable": True,
            },
        ),
    )


@app.exception_handler(CatalogConfigError)
async def catalog_config_handler(request: Request, exc: CatalogConfigError) -> JSONResponse:
    logger.error("catalog_misconfigured", path=request.url.path, error=str(exc))
    return _with_request_id(
        request,
        JSONResponse(
            status_code=500,
            content={
                "error": "catalog_misconfigured",
                "message": str(exc),
                "retryable": False,
            },
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Consistent ErrorResponse JSON instead of a bare 500 page."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return _with_request_id(
        request,
        JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An unexpected error occurred",
                "retryable": True,
            },
        ),
    )


app.include_router(health.router)
app.include_router(recommendations.router, prefix="/api/v1")

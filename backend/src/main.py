"""
FastAPI application for the order tracking backend.

Wires the product, payment and order routers under the API prefix, installs
request correlation logging, CORS and rate limiting, and translates domain
errors into JSON responses. The database engine is opened on startup and
disposed on shutdown.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.v1 import orders_router, payments_router, products_router
from src.core.config import get_settings
from src.core.exceptions import (
    FulfillmentError,
    InsufficientInventoryError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    UpstreamUnavailableError,
)
from src.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from src.core.rate_limit import limiter
from src.database.connection import (
    check_database_health,
    close_database_connections,
    initialize_database,
)

configure_logging()
logger = get_logger(__name__)

ERROR_STATUS_CODES: list[tuple[type[FulfillmentError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (InsufficientInventoryError, status.HTTP_409_CONFLICT),
    (UpstreamUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_code_for(exc: FulfillmentError) -> int:
    """Map a domain error to its HTTP status code."""
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_cls):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open database resources on startup and release them on shutdown."""
    logger.info(
        "Starting order tracking API",
        environment=settings.environment,
        version=settings.app_version,
        debug=settings.debug,
    )
    with log_performance(logger, "startup"):
        await initialize_database()

    yield

    with log_performance(logger, "shutdown"):
        await close_database_connections()
    logger.info("Order tracking API stopped")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Order fulfillment and tracking API for the garments marketplace",
    lifespan=lifespan,
    debug=settings.debug,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Correlate every log line of a request and time it.

    The caller's X-Request-ID is reused when present, otherwise one is
    generated; either way it is echoed back on the response.
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    path = request.url.path

    try:
        with log_performance(logger, "http_request", method=request.method, path=path):
            response = await call_next(request)
    except Exception as e:
        logger.error(
            "Request raised",
            method=request.method,
            path=path,
            error_type=type(e).__name__,
        )
        raise
    finally:
        clear_context()

    response.headers["X-Request-ID"] = request_id
    logger.info(
        "Request served",
        method=request.method,
        path=path,
        status_code=response.status_code,
    )
    return response


def _error_response(status_code: int, content: dict) -> JSONResponse:
    content["request_id"] = get_request_id()
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(FulfillmentError)
async def fulfillment_exception_handler(
    request: Request, exc: FulfillmentError
) -> JSONResponse:
    """Render a domain error with its code, message and context."""
    status_code = status_code_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "Domain error",
        path=request.url.path,
        status_code=status_code,
        error_code=exc.code,
        error=exc.message,
    )
    return _error_response(status_code, {"error": exc.code, **exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # ctx may hold the raised ValueError, which is not JSON serializable
    details = [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]
    logger.warning("Invalid request body", path=request.url.path, details=details)
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {
            "error": "Validation Error",
            "message": "Request validation failed",
            "details": details,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; the response never includes exception details."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
        },
    )


@app.get("/health", tags=["Health"], summary="Health check")
async def health_check() -> dict[str, str]:
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/ready", tags=["Health"], summary="Readiness check")
async def readiness_check():
    """
    Report whether the service can take traffic.

    Returns 503 while the database does not answer.
    """
    database_ready = await check_database_health(max_retries=1)
    body = {
        "status": "ready" if database_ready else "not_ready",
        "service": settings.app_name,
        "version": settings.app_version,
        "dependencies_ready": database_ready,
        "database": "healthy" if database_ready else "unhealthy",
    }
    if not database_ready:
        logger.warning("Readiness check failed", database="unhealthy")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body


@app.get("/live", tags=["Health"], summary="Liveness check")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive", "service": settings.app_name}


app.include_router(
    products_router,
    prefix=f"{settings.api_v1_prefix}/products",
    tags=["Products"],
)
app.include_router(
    payments_router,
    prefix=f"{settings.api_v1_prefix}/payments",
    tags=["Payments"],
)
app.include_router(
    orders_router,
    prefix=f"{settings.api_v1_prefix}/orders",
    tags=["Orders"],
)


def run() -> None:
    """Serve the API with uvicorn, reloading on code changes in development."""
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()

"""
Main Application - FastAPI application setup.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.auth_routes import router as auth_router
from app.api.billing_routes import router as billing_router
from app.api.page_routes import router as page_router
from app.api.status_routes import router as status_router
from app.config import settings
from app.db.session import Database
from app.exceptions import DashboardError
from app.middleware import ProxyHeadersMiddleware, SessionGateMiddleware
from app.observability import get_logger, log_context, metrics, setup_logging, setup_tracing
from app.observability.tracing import instrument_fastapi, instrument_sqlalchemy
from app.services.captcha import TurnstileVerifier
from app.services.object_store import S3ObjectStore

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Owns the database pools, object store client and CAPTCHA client.
    Uvicorn's signal handling drives the shutdown half.
    """
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        environment=settings.environment,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
    )

    database = Database.from_settings(settings, settings.database_url)
    instrument_sqlalchemy(database.engine)
    if settings.auth_db_url != settings.database_url:
        auth_database = Database.from_settings(settings, settings.auth_db_url, name="auth")
        instrument_sqlalchemy(auth_database.engine)
    else:
        auth_database = database

    app.state.database = database
    app.state.auth_database = auth_database
    app.state.object_store = S3ObjectStore.from_settings(settings)
    app.state.captcha = TurnstileVerifier(settings.turnstile_secret_key)

    yield

    logger.info("application_shutting_down")
    await app.state.captcha.close()
    await auth_database.shutdown()
    await database.shutdown()


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as {"error": message}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reject invalid parameters with 422 {"error", "details"}."""
    sanitized_errors = []
    for error in exc.errors():
        sanitized = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        # ctx may contain non-serializable objects
        if "ctx" in error:
            sanitized["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        sanitized_errors.append(sanitized)

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
    )
    return JSONResponse(
        status_code=422,
        content={"error": "Invalid request parameters", "details": sanitized_errors},
    )


@app.exception_handler(DashboardError)
async def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
    """Last resort for domain errors a route did not translate."""
    logger.error("unhandled_dashboard_error", path=request.url.path, error=str(exc))
    metrics.record_error(type(exc).__name__, "http_request")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Setup tracing
setup_tracing()
instrument_fastapi(app)

# Last added runs first: proxy headers, then the gate
app.add_middleware(
    SessionGateMiddleware,
    cookie_names=(settings.session_cookie_name, settings.secure_session_cookie_name),
    enforce_https=settings.is_production,
)
app.add_middleware(ProxyHeadersMiddleware)


# Request logging middleware
@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log all HTTP requests with timing."""
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        request_id=request_id,
    )

    endpoint = request.url.path
    method = request.method
    metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

    try:
        with log_context(request_id=request_id):
            response = await call_next(request)
        duration = time.time() - start_time

        # Route template keeps metric label cardinality bounded
        route = request.scope.get("route")
        metric_endpoint = getattr(route, "path", endpoint)
        metrics.record_http_request(metric_endpoint, method, response.status_code, duration)

        logger.info(
            "request_completed",
            method=method,
            path=endpoint,
            status_code=response.status_code,
            duration_seconds=duration,
            request_id=request_id,
        )

        return response
    except Exception as e:
        duration = time.time() - start_time
        metrics.record_http_request(endpoint, method, 500, duration)
        metrics.record_error(type(e).__name__, "http_request")

        logger.error(
            "request_failed",
            method=method,
            path=endpoint,
            error=str(e),
            duration_seconds=duration,
            request_id=request_id,
            exc_info=True,
        )
        raise
    finally:
        metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()


# Register routes
app.include_router(billing_router)  # Dashboard read models
app.include_router(auth_router)  # Admin sign-in/out
app.include_router(page_router)  # Dashboard page shells
app.include_router(status_router)  # Public health status


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format; 404 when METRICS_ENABLED is off.
    """
    if not settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="Not Found")
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )

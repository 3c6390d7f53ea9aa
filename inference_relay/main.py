import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from inference_relay import __version__
from inference_relay.api.envelope import error_response
from inference_relay.api.routes import router
from inference_relay.core.config import Settings, get_settings, validate_settings
from inference_relay.core.exceptions import RelayError
from inference_relay.core.logging import setup_logging
from inference_relay.core.metrics import PrometheusMiddleware, metrics_response
from inference_relay.core.middleware import (
    REQUEST_ID_HEADER,
    CorsMiddleware,
    RequestLoggingMiddleware,
    cors_headers,
)
from inference_relay.core.rate_limit import limiter
from inference_relay.core.sentry import init_sentry
from inference_relay.gateway.catalog import ModelCatalog
from inference_relay.gateway.relay_client import RelayClient
from inference_relay.gateway.types import ErrorKind

logger = logging.getLogger(__name__)

_HTTP_ERROR_MESSAGES = {
    404: "Not Found",
    405: "Method Not Allowed",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    setup_logging(settings)
    validate_settings(settings)
    init_sentry(settings)
    logger.info(
        "Starting inference relay %s (auth=%s, default model=%s)",
        __version__,
        settings.auth_mode,
        settings.default_model_id,
    )

    yield

    logger.info("Inference relay shut down")


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(RelayError)
    async def _relay_error_handler(request: Request, exc: RelayError):
        return error_response(exc.status_code, exc.message, exc.headers)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request: Request, exc: StarletteHTTPException):
        message = _HTTP_ERROR_MESSAGES.get(exc.status_code, str(exc.detail))
        return error_response(exc.status_code, message, getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(ErrorKind.BAD_REQUEST.status_code, "Invalid request")

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limit_handler(request: Request, exc: RateLimitExceeded):
        logger.warning("Rate limit exceeded for %s on %s", request.client.host if request.client else "-", request.url.path)
        return error_response(ErrorKind.RATE_LIMITED.status_code, f"Rate limit exceeded: {exc.detail}")

    # Runs outside the middleware stack, so CORS and request-id headers are added here
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
        logger.error(
            "Unhandled %s on %s %s:\n%s",
            type(exc).__name__,
            request.method,
            request.url.path,
            "".join(tb),
            extra={"request_id": request_id},
        )
        headers = cors_headers(settings.allowed_origin)
        if request_id:
            headers[REQUEST_ID_HEADER] = request_id
        return error_response(ErrorKind.INTERNAL_ERROR.status_code, "Internal server error", headers)


def create_app(settings: Settings | None = None, relay_client: RelayClient | None = None) -> FastAPI:
    """Build the relay application around one immutable configuration."""
    settings = settings or get_settings()
    debug = settings.app_env == "development"

    app = FastAPI(
        title="Inference Relay",
        description="Authenticated relay in front of a hosted text and image inference API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if debug else None,
    )

    app.state.settings = settings
    app.state.relay_client = relay_client or RelayClient(settings.upstream_config())
    app.state.model_catalog = ModelCatalog(settings.model_map, settings.default_model_id)

    # Limits are read per request from app.state.settings
    app.state.limiter = limiter

    _register_exception_handlers(app, settings)

    # Last added runs first: request logging -> CORS -> metrics -> routes
    if settings.enable_metrics:
        app.add_middleware(PrometheusMiddleware)
    app.add_middleware(CorsMiddleware, allowed_origin=settings.allowed_origin)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(router)

    @app.get("/health", tags=["ops"])
    async def health():
        return {"status": "ok"}

    if settings.enable_metrics:

        @app.get("/metrics", tags=["ops"], include_in_schema=False)
        async def metrics():
            return metrics_response()

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "inference_relay.main:app",
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
    )

"""Prometheus metrics for the relay."""

import time

from prometheus_client import Counter, Histogram, Info, generate_latest
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from inference_relay import __version__

# --- Metrics ---

APP_INFO = Info("relay", "Inference relay application info")
APP_INFO.info({"version": __version__, "name": "inference_relay"})

REQUEST_COUNT = Counter(
    "relay_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "relay_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120],
)

UPSTREAM_ATTEMPTS = Counter(
    "relay_upstream_attempts_total",
    "Upstream calls made by the relay client",
    ["kind", "outcome"],
)

# --- Middleware ---

# Anything else is folded into one label to keep cardinality bounded
_KNOWN_PATHS = frozenset({"/generate", "/generate-image", "/chat", "/health"})

def _normalize_path(path: str) -> str:
    return path if path in _KNOWN_PATHS else "other"

class PrometheusMiddleware:
    """Collect HTTP request metrics for Prometheus (plain ASGI, wraps ``send`` only)."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] == "/metrics":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        path = _normalize_path(scope["path"])
        status_code = 500

        async def send_with_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        start = time.perf_counter()
        try:
            await self.app(scope, receive, send_with_status)
        finally:
            duration = time.perf_counter() - start
            REQUEST_COUNT.labels(method=method, path=path, status=status_code).inc()
            REQUEST_DURATION.labels(method=method, path=path).observe(duration)

def metrics_response() -> Response:
    """Generate Prometheus /metrics response."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )

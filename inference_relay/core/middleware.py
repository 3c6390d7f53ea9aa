"""HTTP middleware: CORS pre-flight/headers and per-request logging.

Both are plain ASGI middleware. They only wrap ``send``, so the request's
``receive`` channel reaches the endpoint untouched and
``Request.is_disconnected()`` sees a client hang-up.
"""

import logging
import time
import uuid

from starlette.datastructures import MutableHeaders
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from inference_relay.core.logging import request_id_var

logger = logging.getLogger(__name__)

ALLOWED_METHODS = "POST, OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization"
REQUEST_ID_HEADER = "X-Request-ID"


def cors_headers(allowed_origin: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": allowed_origin,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    }


class CorsMiddleware:
    """Answer OPTIONS with an empty 204 and stamp CORS headers on every response."""

    def __init__(self, app: ASGIApp, allowed_origin: str = "*"):
        self.app = app
        self.headers = cors_headers(allowed_origin)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            response = Response(status_code=204, headers=self.headers)
            await response(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message).update(self.headers)
            await send(message)

        await self.app(scope, receive, send_with_cors)


class RequestLoggingMiddleware:
    """Log one line per request and tag it with an X-Request-ID.

    The id is also kept in ``request.state.request_id`` and in the logging
    context, so every record written while the request runs carries it.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = uuid.uuid4().hex[:16]
        scope.setdefault("state", {})["request_id"] = request_id
        token = request_id_var.set(request_id)
        status_code = 500

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        start = time.perf_counter()
        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            logger.info(
                "%s %s -> %d (%dms)",
                scope["method"],
                scope["path"],
                status_code,
                elapsed_ms,
                extra={"request_id": request_id},
            )
            request_id_var.reset(token)

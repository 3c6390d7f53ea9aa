"""Relay Client: talks to the upstream inference API for the gateway.

Each public call opens one ``httpx.AsyncClient`` (finite timeout), runs the
attempt function under the shared RetryPolicy, and returns a single
UpstreamResult. Upstream wire format (Hugging Face Inference API style):

    POST {base_url}/{model_id}
    {"inputs": "<prompt>", "parameters": {...}, "options": {"wait_for_model": true}}

Text replies are ``[{"generated_text": "..."}]``; image replies are raw bytes
with an ``image/*`` content type. Base64 encoding is left to the gateway.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable

import httpx

from inference_relay.gateway.normalizer import (
    error_outcome,
    normalize_image_response,
    normalize_text_response,
)
from inference_relay.gateway.retry import CancelProbe, RetryPolicy
from inference_relay.gateway.types import (
    AttemptOutcome,
    AttemptStatus,
    ErrorKind,
    UpstreamConfig,
    UpstreamResult,
)

logger = logging.getLogger(__name__)


class RelayClient:
    """Builds upstream requests, applies retries, normalizes results."""

    def __init__(self, config: UpstreamConfig, retry_policy: RetryPolicy | None = None):
        self.config = config
        self.retry = retry_policy or RetryPolicy(config.retry)

    def _headers(self, accept: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": accept}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _make_attempt(
        self,
        client: httpx.AsyncClient,
        url: str,
        payload: dict,
        accept: str,
        on_success: Callable[[httpx.Response], AttemptOutcome],
    ) -> Callable[[], Awaitable[AttemptOutcome]]:
        timeout = self.config.timeout_seconds

        async def attempt() -> AttemptOutcome:
            start = time.monotonic()
            try:
                resp = await client.post(url, json=payload, headers=self._headers(accept))
            except httpx.TimeoutException:
                return AttemptOutcome(
                    status=AttemptStatus.TRANSIENT,
                    detail=f"Upstream timeout after {timeout}s",
                )
            except httpx.HTTPError as e:
                return AttemptOutcome(
                    status=AttemptStatus.TRANSIENT,
                    detail=f"Network error contacting upstream: {type(e).__name__}",
                )

            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.debug("Upstream POST %s -> %d in %dms", url, resp.status_code, elapsed_ms)

            if not resp.is_success:
                return error_outcome(resp)
            return on_success(resp)

        return attempt

    async def call_text(
        self,
        model_id: str,
        prompt: str,
        should_cancel: CancelProbe | None = None,
    ) -> UpstreamResult:
        """Generate text for ``prompt`` with the given upstream model."""
        url = self.config.model_url(model_id)
        payload = {"inputs": prompt, **self.config.generation.to_payload()}

        async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
            attempt = self._make_attempt(
                client,
                url,
                payload,
                accept="application/json",
                on_success=lambda resp: normalize_text_response(resp, prompt),
            )
            return await self.retry.run(attempt, kind="text", should_cancel=should_cancel)

    async def call_image(
        self,
        prompt: str,
        should_cancel: CancelProbe | None = None,
    ) -> UpstreamResult:
        """Generate an image for ``prompt`` with the configured image model."""
        if not self.config.image_model_id:
            return UpstreamResult.failure(ErrorKind.UPSTREAM_FAILURE, "No image model configured")

        url = self.config.model_url(self.config.image_model_id)
        payload = {
            "inputs": prompt,
            "options": {"wait_for_model": self.config.generation.wait_for_model},
        }

        async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
            attempt = self._make_attempt(
                client,
                url,
                payload,
                accept="image/*",
                on_success=normalize_image_response,
            )
            return await self.retry.run(attempt, kind="image", should_cancel=should_cancel)

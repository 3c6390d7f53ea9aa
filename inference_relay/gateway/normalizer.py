"""Response Normalizer: turns raw upstream replies into AttemptOutcomes.

  - Text: expects ``[{"generated_text": "..."}]`` (a single record object is
    accepted too); strips an echoed prompt and surrounding whitespace.
  - Image: expects binary ``image/*`` content.
  - Errors: classifies upstream error payloads as transient or permanent.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from inference_relay.gateway.types import AttemptOutcome, AttemptStatus

logger = logging.getLogger(__name__)

# Upstream error text that means "try again later"
TRANSIENT_MARKERS = (
    "loading",
    "rate limit",
    "too many",
    "unavailable",
    "overloaded",
    "busy",
    "timeout",
    "timed out",
)

# Upstream error text that means "this input will never work"
PERMANENT_MARKERS = (
    "invalid",
    "validation",
    "bad request",
    "not supported",
    "unsupported",
    "must be",
)

_DETAIL_LIMIT = 300


def extract_error_message(payload: Any) -> str | None:
    """Pull a human-readable error out of an upstream JSON error body."""
    if not isinstance(payload, dict):
        return None
    for key in ("error", "detail", "message"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, list) and value:
            return "; ".join(str(v) for v in value)
        if isinstance(value, dict):
            nested = extract_error_message(value)
            if nested:
                return nested
    return None


def classify_error(status_code: int, message: str | None) -> AttemptStatus:
    """Decide whether an upstream error is worth retrying.

    Only an explicit input problem reported with a 4xx (other than 408/429)
    is permanent. Without an error payload every failure is transient.
    """
    if not message:
        return AttemptStatus.TRANSIENT

    lowered = message.lower()
    if any(marker in lowered for marker in TRANSIENT_MARKERS):
        return AttemptStatus.TRANSIENT

    client_error = 400 <= status_code < 500 and status_code not in (408, 429)
    in_band_error = 200 <= status_code < 300
    if (client_error or in_band_error) and any(marker in lowered for marker in PERMANENT_MARKERS):
        return AttemptStatus.PERMANENT

    return AttemptStatus.TRANSIENT


def _safe_json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _truncate(text: str) -> str:
    text = " ".join(text.split())
    return text if len(text) <= _DETAIL_LIMIT else text[: _DETAIL_LIMIT - 3] + "..."


def error_outcome(resp: httpx.Response) -> AttemptOutcome:
    """Outcome for a non-2xx upstream response."""
    message = extract_error_message(_safe_json(resp))
    status = classify_error(resp.status_code, message)
    reason = message or _truncate(resp.text) or resp.reason_phrase or "no body"
    return AttemptOutcome(
        status=status,
        detail=f"Upstream returned {resp.status_code}: {reason}",
        status_code=resp.status_code,
    )


def strip_prompt_echo(text: str, prompt: str) -> str:
    """Remove the prompt if the upstream echoed it in front of the completion."""
    if prompt and text.startswith(prompt):
        text = text[len(prompt) :]
    return text.strip()


def normalize_text_response(resp: httpx.Response, prompt: str) -> AttemptOutcome:
    """Outcome for a 2xx text-generation response."""
    payload = _safe_json(resp)

    message = extract_error_message(payload)
    if message:
        return AttemptOutcome(
            status=classify_error(resp.status_code, message),
            detail=f"Upstream error: {message}",
            status_code=resp.status_code,
        )

    record = None
    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        record = payload[0]
    elif isinstance(payload, dict):
        record = payload

    generated = record.get("generated_text") if record is not None else None
    if isinstance(generated, str):
        text = strip_prompt_echo(generated, prompt)
        if text:
            return AttemptOutcome(status=AttemptStatus.SUCCESS, text=text, status_code=resp.status_code)

    logger.debug("Unexpected upstream text body: %.200s", resp.text)
    return AttemptOutcome(
        status=AttemptStatus.MALFORMED,
        detail="Unexpected response format from upstream",
        status_code=resp.status_code,
    )


def normalize_image_response(resp: httpx.Response) -> AttemptOutcome:
    """Outcome for a 2xx image-generation response."""
    mime_type = resp.headers.get("content-type", "").split(";", 1)[0].strip().lower()

    if mime_type.startswith("image/") and resp.content:
        return AttemptOutcome(
            status=AttemptStatus.SUCCESS,
            image=resp.content,
            mime_type=mime_type,
            status_code=resp.status_code,
        )

    message = extract_error_message(_safe_json(resp))
    if message:
        return AttemptOutcome(
            status=classify_error(resp.status_code, message),
            detail=f"Upstream error: {message}",
            status_code=resp.status_code,
        )

    return AttemptOutcome(
        status=AttemptStatus.MALFORMED,
        detail=f"Unexpected image response from upstream (content-type: {mime_type or 'none'})",
        status_code=resp.status_code,
    )

"""Uniform ``{response} | {image_url} | {error}`` JSON envelope."""

import base64

from fastapi.responses import JSONResponse

from inference_relay.gateway.types import UpstreamResult
from inference_relay.schemas.generate import ResponseEnvelope


def data_uri(image: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(image).decode("ascii")
    return f"data:{mime_type or 'application/octet-stream'};base64,{encoded}"


def error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ResponseEnvelope(error=message).to_content(),
        headers=headers,
    )


def envelope_response(result: UpstreamResult) -> JSONResponse:
    """Map a relay result to the HTTP envelope and status code."""
    if result.error is not None:
        return error_response(result.error.status_code, result.detail or result.error.value)

    if result.image is not None:
        envelope = ResponseEnvelope(image_url=data_uri(result.image, result.mime_type))
    else:
        envelope = ResponseEnvelope(response=result.response or "")
    return JSONResponse(status_code=200, content=envelope.to_content())

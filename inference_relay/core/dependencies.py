import json
from typing import Any

from fastapi import Depends, Header, Request
from pydantic import BaseModel, ValidationError

from inference_relay.core.config import Settings
from inference_relay.core.exceptions import BadRequestError, UnauthorizedError, UnsupportedMediaTypeError
from inference_relay.core.security import extract_bearer_token, token_is_accepted
from inference_relay.gateway.catalog import ModelCatalog
from inference_relay.gateway.relay_client import RelayClient
from inference_relay.schemas.generate import GenerateRequest, ImageRequest

INVALID_BODY = "'message' parameter missing or invalid JSON."


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_relay_client(request: Request) -> RelayClient:
    return request.app.state.relay_client


def get_model_catalog(request: Request) -> ModelCatalog:
    return request.app.state.model_catalog


async def require_inbound_token(
    settings: Settings = Depends(get_app_settings),
    authorization: str | None = Header(None, description="Bearer <token>"),
) -> None:
    if not settings.auth_enabled:
        return

    token = extract_bearer_token(authorization)
    if token is None:
        raise UnauthorizedError("Unauthorized: missing bearer token")
    if not token_is_accepted(token, settings.accepted_tokens):
        raise UnauthorizedError("Unauthorized: invalid bearer token")


def _is_json(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or (media_type.startswith("application/") and media_type.endswith("+json"))


async def read_json_object(request: Request) -> dict[str, Any]:
    if not _is_json(request.headers.get("content-type", "")):
        raise UnsupportedMediaTypeError("Content-Type must be application/json")

    raw = await request.body()
    try:
        body = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise BadRequestError(INVALID_BODY)

    if not isinstance(body, dict):
        raise BadRequestError(INVALID_BODY)
    return body


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    field = str(first["loc"][0]) if first.get("loc") else ""
    if field == "message":
        return INVALID_BODY
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid '{location}': {first.get('msg', 'invalid value')}"


def _parse(model: type[BaseModel], body: dict[str, Any]) -> Any:
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise BadRequestError(_validation_message(exc))


async def parse_generate_request(body: dict[str, Any] = Depends(read_json_object)) -> GenerateRequest:
    return _parse(GenerateRequest, body)


async def parse_image_request(body: dict[str, Any] = Depends(read_json_object)) -> ImageRequest:
    return _parse(ImageRequest, body)

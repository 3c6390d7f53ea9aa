import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from inference_relay.api.envelope import envelope_response
from inference_relay.core.config import Settings
from inference_relay.core.dependencies import (
    get_app_settings,
    get_model_catalog,
    get_relay_client,
    parse_generate_request,
    parse_image_request,
    require_inbound_token,
)
from inference_relay.core.rate_limit import bind_rate_limit, generation_limit, limiter, rate_limit_disabled
from inference_relay.gateway.catalog import ModelCatalog
from inference_relay.gateway.prompt import build_prompt, detect_intent
from inference_relay.gateway.relay_client import RelayClient
from inference_relay.gateway.types import Intent, UpstreamResult
from inference_relay.schemas.generate import GenerateRequest, ImageRequest

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["relay"],
    dependencies=[Depends(require_inbound_token), Depends(bind_rate_limit)],
)


async def _generate_text(
    request: Request,
    payload: GenerateRequest,
    settings: Settings,
    relay: RelayClient,
    catalog: ModelCatalog,
) -> UpstreamResult:
    model_id = catalog.resolve(payload.model)
    prompt = build_prompt(
        payload.message,
        history=payload.turns(),
        instruction=payload.instruction if payload.instruction is not None else settings.default_instruction,
        memory_summary=payload.summary(),
    )
    result = await relay.call_text(model_id, prompt, should_cancel=request.is_disconnected)
    logger.info(
        "Text generation via %s: %s after %d attempt(s)",
        model_id,
        "ok" if result.ok else result.error.value,
        result.attempts,
    )
    return result


async def _generate_image(request: Request, payload: ImageRequest, relay: RelayClient) -> UpstreamResult:
    result = await relay.call_image(payload.message, should_cancel=request.is_disconnected)
    logger.info(
        "Image generation: %s after %d attempt(s)",
        "ok" if result.ok else result.error.value,
        result.attempts,
    )
    return result


@router.post("/generate")
@limiter.limit(generation_limit, exempt_when=rate_limit_disabled)
async def generate(
    request: Request,
    payload: GenerateRequest = Depends(parse_generate_request),
    settings: Settings = Depends(get_app_settings),
    relay: RelayClient = Depends(get_relay_client),
    catalog: ModelCatalog = Depends(get_model_catalog),
) -> JSONResponse:
    result = await _generate_text(request, payload, settings, relay, catalog)
    return envelope_response(result)


@router.post("/generate-image")
@limiter.limit(generation_limit, exempt_when=rate_limit_disabled)
async def generate_image(
    request: Request,
    payload: ImageRequest = Depends(parse_image_request),
    relay: RelayClient = Depends(get_relay_client),
) -> JSONResponse:
    result = await _generate_image(request, payload, relay)
    return envelope_response(result)


@router.post("/chat")
@limiter.limit(generation_limit, exempt_when=rate_limit_disabled)
async def chat(
    request: Request,
    payload: GenerateRequest = Depends(parse_generate_request),
    settings: Settings = Depends(get_app_settings),
    relay: RelayClient = Depends(get_relay_client),
    catalog: ModelCatalog = Depends(get_model_catalog),
) -> JSONResponse:
    """Route to the image or the text path depending on what the message asks for."""
    if detect_intent(payload.message) == Intent.IMAGE:
        result = await _generate_image(request, payload, relay)
    else:
        result = await _generate_text(request, payload, settings, relay, catalog)
    return envelope_response(result)

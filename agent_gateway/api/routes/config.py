"""Runtime configuration endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ...context import GatewayContext
from ...errors import ValidationError
from ..deps import get_context
from ..schemas import ConfigResponse, ConfigUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/config", response_model=ConfigResponse, summary="Get runtime settings")
def get_config(context: GatewayContext = Depends(get_context)) -> ConfigResponse:
    return ConfigResponse(**context.settings.to_json())


@router.post(
    "/api/config",
    response_model=ConfigResponse,
    summary="Update runtime settings",
    description=(
        "Replace the system prompt, model and endpoint. The API key is only "
        "replaced when a non-empty one is supplied."
    ),
)
def update_config(
    request: ConfigUpdateRequest,
    context: GatewayContext = Depends(get_context),
) -> ConfigResponse:
    try:
        payload = context.update_settings(
            system_prompt=request.systemPrompt,
            model=request.model,
            endpoint=request.endpoint,
            api_key=request.apiKey,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ConfigResponse(**payload)

"""External tool provider (MCP server) management."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ...context import GatewayContext
from ...errors import BootstrapError, ProviderExistsError, ProviderUnavailableError
from ..deps import get_context
from ..schemas import NameRequest, ProviderCreateRequest, StatusResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/mcp-servers", summary="List providers")
def list_providers(context: GatewayContext = Depends(get_context)) -> list[dict]:
    return context.providers.to_json()


@router.post(
    "/api/mcp-servers",
    response_model=StatusResponse,
    responses={
        409: {"description": "A provider with this name already exists"},
        500: {"description": "The provider failed to start"},
    },
    summary="Start a provider",
    description=(
        "Launch the command, perform the handshake, discover its tools and "
        "register them."
    ),
)
def add_provider(
    request: ProviderCreateRequest,
    context: GatewayContext = Depends(get_context),
) -> StatusResponse:
    if request.name in context.providers:
        raise HTTPException(
            status_code=409, detail=f"Provider '{request.name}' already exists"
        )

    provider = context.new_provider(request.name, request.command, request.args, request.env)
    try:
        provider.bootstrap()
    except BootstrapError as e:
        logger.error(f"Provider '{request.name}' failed to start: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    try:
        context.providers.add(provider)
    except ProviderExistsError as e:
        provider.shutdown()
        raise HTTPException(status_code=409, detail=str(e))
    except ProviderUnavailableError as e:
        provider.shutdown()
        raise HTTPException(status_code=500, detail=str(e))
    return StatusResponse()


@router.delete("/api/mcp-servers", response_model=StatusResponse, summary="Stop a provider")
def remove_provider(
    request: NameRequest,
    context: GatewayContext = Depends(get_context),
) -> StatusResponse:
    context.providers.remove_by_name(request.name)
    return StatusResponse()

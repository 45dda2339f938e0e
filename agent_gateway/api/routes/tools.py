"""Local tool management, including the AI tool-creation switch."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ...context import GatewayContext
from ...errors import ValidationError
from ..deps import get_context
from ..schemas import NameRequest, StatusResponse, ToolCreateRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/tools", summary="List tools")
def list_tools(context: GatewayContext = Depends(get_context)) -> list[dict]:
    return context.tools.to_json()


@router.post(
    "/api/tools",
    response_model=StatusResponse,
    summary="Create a local tool",
    description=(
        "Compile a Python function body into a tool. The schema's property "
        "names become the function's parameters. An existing tool with the "
        "same name is replaced."
    ),
)
def create_tool(
    request: ToolCreateRequest,
    context: GatewayContext = Depends(get_context),
) -> StatusResponse:
    try:
        context.compiler.compile(
            request.name, request.description, request.parameters, request.code
        )
    except ValidationError as e:
        logger.warning(f"Rejected tool '{request.name}': {e}")
        raise HTTPException(status_code=400, detail=str(e))
    return StatusResponse()


@router.delete("/api/tools", response_model=StatusResponse, summary="Remove a tool")
def delete_tool(
    request: NameRequest,
    context: GatewayContext = Depends(get_context),
) -> StatusResponse:
    context.tools.remove_by_name(request.name)
    return StatusResponse()


@router.post(
    "/api/ai-tool-creation",
    response_model=StatusResponse,
    summary="Enable AI tool creation",
    description="Register the tool-creator tool so the model can author new tools.",
)
def enable_tool_creation(context: GatewayContext = Depends(get_context)) -> StatusResponse:
    context.compiler.install_tool_creator()
    return StatusResponse()


@router.delete(
    "/api/ai-tool-creation",
    response_model=StatusResponse,
    summary="Disable AI tool creation",
)
def disable_tool_creation(context: GatewayContext = Depends(get_context)) -> StatusResponse:
    context.compiler.remove_tool_creator()
    return StatusResponse()

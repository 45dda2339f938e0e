"""Health check endpoints."""

from fastapi import APIRouter, Depends

from ... import __version__
from ...context import GatewayContext
from ..deps import get_context
from ..schemas import HealthResponse, StatusResponse

router = APIRouter()


@router.get(
    "/api",
    response_model=StatusResponse,
    summary="API status",
    description="Liveness check used by the web client.",
)
def api_status() -> StatusResponse:
    return StatusResponse()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check if the gateway is running and report catalog sizes.",
)
def health_check(context: GatewayContext = Depends(get_context)) -> HealthResponse:
    """Return health status of the gateway."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        model=context.settings.model,
        tools=len(context.tools),
        providers=len(context.providers),
    )

"""Request dependencies shared by the route modules."""

from fastapi import HTTPException, Request

from ..context import GatewayContext


def get_context(request: Request) -> GatewayContext:
    """Return the gateway context owned by the running application."""
    context = getattr(request.app.state, "context", None)
    if context is None or context.closed:
        raise HTTPException(status_code=503, detail="Gateway is not running")
    return context

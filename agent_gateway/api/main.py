"""
FastAPI application for the agent gateway.

Serves the REST API used by the web client plus the WebSocket event channel
at ``/ws``. The lifespan handler owns the gateway context: it is built (or
taken from ``create_app``) at startup and closed at shutdown, which stops
every provider process.

Usage:
    # Development server with auto-reload
    uvicorn agent_gateway.api.main:app --reload --host 0.0.0.0 --port 3000

    # Debug mode (verbose logging)
    LOG_LEVEL=DEBUG agent-gateway
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import config
from ..context import GatewayContext
from ..tracing import init_tracing_from_config, shutdown_tracing
from .routes import config as config_routes
from .routes import events, health, messages, providers, tools


def configure_logging():
    """Configure logging based on LOG_LEVEL environment variable."""
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("agent_gateway").setLevel(log_level)


configure_logging()
logger = logging.getLogger(__name__)


def _log_startup(context: GatewayContext, tracing_status: str) -> None:
    rule = "=" * 60
    logger.info(rule)
    logger.info(f"Model: {context.settings.model} @ {context.settings.endpoint}")
    logger.info(
        f"Turn limit: {context.loop.max_turns}, tool sandbox: {context.compiler.sandbox}"
    )
    providers = context.providers.all_providers()
    logger.info(f"Providers ({len(providers)}):")
    for provider in providers:
        logger.info(
            f"  [{provider.name}] server={provider.server_name} tools={len(provider.tool_names)}"
        )
    tool_list = context.tools.all_tools()
    logger.info(f"Tools ({len(tool_list)}):")
    for tool in tool_list:
        logger.info(f"  - {tool.name} <{tool.origin}>")
    logger.info(f"Langfuse: {tracing_status}")
    logger.info(rule)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the gateway context for the lifetime of the server."""
    if app.state.context is None:
        logger.info("Building gateway context from environment")
        app.state.context = GatewayContext(config)
        app.state.context.preload_providers()
    context: GatewayContext = app.state.context
    context.register_atexit()

    tracing_client = init_tracing_from_config(config.langfuse, release=__version__)
    _log_startup(
        context,
        "enabled" if tracing_client.enabled else f"disabled ({tracing_client.error})",
    )

    yield

    logger.info("Stopping agent gateway")
    context.close()
    shutdown_tracing()


def create_app(context: Optional[GatewayContext] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        context: Gateway context to serve. When omitted one is built from
            the environment configuration at startup.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Agent Gateway API",
        description=(
            "Conversational agent gateway: drives an OpenAI-compatible model "
            "through tool-calling turns over local and provider tools."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials="*" not in config.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for module, tag in (
        (health, "Health"),
        (config_routes, "Config"),
        (messages, "Messages"),
        (tools, "Tools"),
        (providers, "Providers"),
        (events, "Events"),
    ):
        app.include_router(module.router, tags=[tag])

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed bodies are client errors (400), not 422."""
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    return app


app = create_app()


def run_server():
    """Entry point for ``agent-gateway``; uvicorn runs the lifespan shutdown on SIGINT/SIGTERM."""
    import uvicorn

    uvicorn.run(
        "agent_gateway.api.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
    )


if __name__ == "__main__":
    run_server()

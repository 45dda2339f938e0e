"""
FastAPI server module for the agent gateway.

Provides the REST API and the WebSocket event channel.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]

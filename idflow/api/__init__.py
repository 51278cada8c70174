"""
API package - FastAPI routes and schemas.
"""

from idflow.api.routes import endpoints, runs, websocket, workflow

__all__ = ["endpoints", "runs", "websocket", "workflow"]

"""Plugin API endpoints."""

from blocker.api.plugin import router as plugin_router

__all__ = ["plugin_router"]

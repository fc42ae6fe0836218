"""Dispatch API package."""

from dispatch.api.routes import router

__all__ = ["router"]

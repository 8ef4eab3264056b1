# src/webhook_hub/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import admin_router, system_router, webhook_router

__all__ = [
    "admin_router",
    "system_router",
    "webhook_router",
]

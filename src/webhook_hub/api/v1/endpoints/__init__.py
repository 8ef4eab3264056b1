# src/webhook_hub/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .admin import router as admin_router
from .system import router as system_router
from .webhook import router as webhook_router

__all__ = [
    "admin_router",
    "system_router",
    "webhook_router",
]

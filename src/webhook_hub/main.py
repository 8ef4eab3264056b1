# src/webhook_hub/main.py
"""Main entry point for the Webhook Hub application."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from webhook_hub.api.v1 import admin_router, system_router, webhook_router
from webhook_hub.core.logging import configure_logging
from webhook_hub.core.settings import settings
from webhook_hub.services.delivery_worker import DeliveryWorkerPool, get_worker_pool

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Webhook fan-out relay with durable, retried delivery",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Provider-facing intake lives outside the versioned admin API
app.include_router(webhook_router, prefix="/meta")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging(settings.log_level)
    if settings.delivery_workers_enabled:
        pool = get_worker_pool()
        await pool.start()
        app.state.worker_pool = pool
    else:
        app.state.worker_pool = None


@app.on_event("shutdown")
async def on_shutdown() -> None:
    pool: DeliveryWorkerPool | None = getattr(app.state, "worker_pool", None)
    if pool:
        await pool.stop(settings.delivery_shutdown_grace_seconds)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Webhook fan-out relay with durable, retried delivery",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("webhook_hub.main:app", host="0.0.0.0", port=8000, reload=settings.debug)

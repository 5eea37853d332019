# src/launchpad_federation/main.py
"""Main entry point for the federation service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from launchpad_federation import __version__
from launchpad_federation.api.v1 import federated_submissions_router, instances_router
from launchpad_federation.core.settings import settings
from launchpad_federation.db.session import create_tables
from launchpad_federation.services.partner_client import get_partner_client

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Directory discovery and federated submission across partner instances",
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

# Include API routers
app.include_router(instances_router, prefix="/api/v1")
app.include_router(federated_submissions_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    if settings.auto_create_tables:
        create_tables()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await get_partner_client().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "instance_id": settings.federation_instance_id,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("launchpad_federation.main:app", host="0.0.0.0", port=8000, reload=settings.debug)

# src/launchpad_federation/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import federated_submissions_router, instances_router

__all__ = [
    "federated_submissions_router",
    "instances_router",
]

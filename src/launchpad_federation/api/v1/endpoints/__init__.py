# src/launchpad_federation/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .federated_submissions import router as federated_submissions_router
from .instances import router as instances_router

__all__ = [
    "federated_submissions_router",
    "instances_router",
]

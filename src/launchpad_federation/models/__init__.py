# src/launchpad_federation/models/__init__.py
"""SQLAlchemy models for the federation service."""

from .federation import FederatedSubmission, FederationInstance, FederationResult

__all__ = [
    "FederationInstance",
    "FederatedSubmission",
    "FederationResult",
]

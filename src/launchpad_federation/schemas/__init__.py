# src/launchpad_federation/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .federation import (
    CostRequest,
    CostResponse,
    CreationResponse,
    DirectorySelection,
    DispatchResponse,
    FederatedSubmissionCreate,
    FederatedSubmissionResponse,
    InstanceCreate,
    InstanceResponse,
    InstanceStatusUpdate,
    PingResponse,
    RemoteDirectoryResponse,
    StatusResponse,
)

__all__ = [
    "CostRequest", "CostResponse",
    "CreationResponse",
    "DirectorySelection",
    "DispatchResponse",
    "FederatedSubmissionCreate", "FederatedSubmissionResponse",
    "InstanceCreate", "InstanceResponse", "InstanceStatusUpdate",
    "PingResponse",
    "RemoteDirectoryResponse",
    "StatusResponse",
]

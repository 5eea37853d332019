# src/launchpad_federation/schemas/federation.py
"""Federation-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class FeeSchema(BaseModel):
    """A directory submission fee."""

    model_config = ConfigDict(from_attributes=True)

    amount: Decimal = Decimal("0")
    # Omitted means the configured default currency.
    currency: str | None = None


class InstanceCreate(BaseModel):
    """Schema for registering a federation instance."""

    name: str
    base_url: str
    admin_email: str
    description: str | None = None


class InstanceStatusUpdate(BaseModel):
    status: str


class InstanceResponse(BaseModel):
    """Schema for federation instance information returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    base_url: str
    description: str | None
    status: str
    last_seen_at: datetime | None
    version: str | None
    api_version: str | None
    federation_enabled: bool
    supported_features: list[str]
    last_health_check_at: datetime | None
    error_count: int


class PingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    instance_url: str
    instance_id: int | None = None
    instance_name: str | None = None
    healthy: bool
    compatible: bool
    federation_enabled: bool
    version: str | None = None
    api_version: str | None = None
    supported_features: list[str] = Field(default_factory=list)
    error: str | None = None


class RemoteDirectoryResponse(BaseModel):
    """A directory advertised by a partner instance."""

    model_config = ConfigDict(from_attributes=True)

    instance_id: int
    instance_name: str
    instance_url: str
    directory_id: str
    name: str
    category: str | None
    fee: FeeSchema
    description: str | None = None
    updated_at: datetime | None = None


class DirectorySelection(BaseModel):
    """One chosen target; ``fee`` is optional when the catalog supplies it."""

    instance_url: str
    directory_id: str
    fee: FeeSchema | None = None


class CostRequest(BaseModel):
    directories: list[DirectorySelection]


class CostItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    instance_url: str
    directory_id: str
    amount: Decimal


class CostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: Decimal
    currency: str
    items: list[CostItemResponse]
    requires_payment: bool


class SubmissionContentSchema(BaseModel):
    """The local submission to publish."""

    url: str
    owner_ref: str
    submission_ref: str | None = None
    title: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)


class FederatedSubmissionCreate(BaseModel):
    submission: SubmissionContentSchema
    directories: list[DirectorySelection]


class FederatedSubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    submission_ref: str
    owner_ref: str
    url: str
    title: str | None
    total_cost: Decimal
    currency: str
    payment_session_id: str | None
    checkout_url: str | None
    status: str
    created_at: datetime
    updated_at: datetime


class DispatchOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    instance_url: str
    directory_id: str
    ok: bool
    state: str
    remote_submission_id: str | None = None
    error: str | None = None
    skipped: bool = False


class CreationResponse(BaseModel):
    federated_submission: FederatedSubmissionResponse
    cost: CostResponse
    requires_payment: bool
    payment_session_id: str | None = None
    checkout_url: str | None = None
    outcomes: list[DispatchOutcomeResponse] = Field(default_factory=list)


class DispatchSummary(BaseModel):
    total: int
    successful: int
    failed: int


class DispatchResponse(BaseModel):
    status: str
    results: list[DispatchOutcomeResponse]
    summary: DispatchSummary


class FederationResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    instance_url: str
    directory_id: str
    state: str
    remote_submission_id: str | None
    error_message: str | None
    retry_count: int
    submitted_at: datetime | None
    updated_at: datetime


class StatusSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_directories: int
    approved_count: int
    rejected_count: int
    failed_count: int
    pending_count: int
    submitted_count: int


class StatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    federated_submission: FederatedSubmissionResponse
    results: list[FederationResultResponse]
    summary: StatusSummaryResponse

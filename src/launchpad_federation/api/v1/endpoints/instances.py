# src/launchpad_federation/api/v1/endpoints/instances.py
"""Partner instance registry endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, status

from launchpad_federation.core.errors import FederationError
from launchpad_federation.models import FederationInstance
from launchpad_federation.schemas.federation import (
    InstanceCreate,
    InstanceResponse,
    InstanceStatusUpdate,
    PingResponse,
)
from launchpad_federation.services.registry import PingResult

from ..dependencies import RegistryDep, http_error

router = APIRouter(prefix="/federation/instances", tags=["federation"])


@router.get("/", response_model=list[InstanceResponse])
async def list_instances(
    registry: RegistryDep,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
) -> list[FederationInstance]:
    """List known federation instances, optionally filtered by status."""
    return registry.list_known(status=status_filter, limit=limit)


@router.post("/", response_model=InstanceResponse, status_code=status.HTTP_201_CREATED)
async def register_instance(
    instance_data: InstanceCreate,
    registry: RegistryDep,
) -> FederationInstance:
    """Register a new federation instance; it starts out unverified."""
    try:
        return registry.register(instance_data.model_dump())
    except FederationError as exc:
        raise http_error(exc) from exc


@router.post("/ping", response_model=list[PingResponse])
async def ping_all_instances(registry: RegistryDep) -> list[PingResult]:
    """Health-check every known instance and record the results."""
    return await registry.ping_all()


@router.get("/{instance_id}", response_model=InstanceResponse)
async def get_instance(instance_id: int, registry: RegistryDep) -> FederationInstance:
    """Get a specific federation instance by ID."""
    try:
        return registry.get(instance_id)
    except FederationError as exc:
        raise http_error(exc) from exc


@router.patch("/{instance_id}", response_model=InstanceResponse)
async def update_instance_status(
    instance_id: int,
    update: InstanceStatusUpdate,
    registry: RegistryDep,
) -> FederationInstance:
    """Transition an instance's status."""
    try:
        return registry.update_status(instance_id, update.status)
    except FederationError as exc:
        raise http_error(exc) from exc


@router.post("/{instance_id}/ping", response_model=PingResponse)
async def ping_instance(instance_id: int, registry: RegistryDep) -> PingResult:
    """Health-check a single instance without changing its status."""
    try:
        instance = registry.get(instance_id)
    except FederationError as exc:
        raise http_error(exc) from exc
    return await registry.ping(instance)

# src/launchpad_federation/api/v1/endpoints/federated_submissions.py
"""Federated submission endpoints: discovery, pricing, dispatch and retry."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Query, Response, status

from launchpad_federation.core.errors import FederationError
from launchpad_federation.models.federation import SUBMISSION_PARTIALLY_SUBMITTED
from launchpad_federation.schemas.federation import (
    CostRequest,
    CostResponse,
    CreationResponse,
    DirectorySelection,
    DispatchResponse,
    FederatedSubmissionCreate,
    RemoteDirectoryResponse,
    StatusResponse,
)
from launchpad_federation.services import cost as cost_calculator
from launchpad_federation.services.catalog import RemoteDirectory
from launchpad_federation.services.cost import CostBreakdown, SelectedDirectory
from launchpad_federation.services.orchestrator import DispatchOutcome, selection_from_payload

from ..dependencies import (
    CatalogDep,
    OrchestratorDep,
    RetryCoordinatorDep,
    StatusAggregatorDep,
    http_error,
)

router = APIRouter(prefix="/federated-submissions", tags=["federated-submissions"])


def _selection(directories: Sequence[DirectorySelection]) -> list[SelectedDirectory]:
    return selection_from_payload(
        directory.model_dump(exclude_none=True) for directory in directories
    )


def _cost_response(breakdown: CostBreakdown) -> dict[str, Any]:
    return {
        "total": breakdown.total,
        "currency": breakdown.currency,
        "items": breakdown.items,
        "requires_payment": breakdown.requires_payment,
    }


def _dispatch_response(
    response: Response, federated_status: str, outcomes: list[DispatchOutcome]
) -> dict[str, Any]:
    successful = sum(1 for outcome in outcomes if outcome.ok)
    failed = len(outcomes) - successful
    if federated_status == SUBMISSION_PARTIALLY_SUBMITTED:
        response.status_code = status.HTTP_207_MULTI_STATUS
    return {
        "status": federated_status,
        "results": outcomes,
        "summary": {"total": len(outcomes), "successful": successful, "failed": failed},
    }


@router.get("/directories", response_model=list[RemoteDirectoryResponse])
async def discover_directories(
    catalog: CatalogDep,
    category: str | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
) -> list[RemoteDirectory]:
    """Discover directories advertised across the federation network."""
    return await catalog.discover(category=category, limit=limit)


@router.post("/calculate-cost", response_model=CostResponse)
async def calculate_cost(request: CostRequest) -> dict[str, Any]:
    """Price a selection of directories."""
    try:
        return _cost_response(cost_calculator.calculate(_selection(request.directories)))
    except FederationError as exc:
        raise http_error(exc) from exc


@router.post("/", response_model=CreationResponse, status_code=status.HTTP_201_CREATED)
async def create_federated_submission(
    payload: FederatedSubmissionCreate,
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    """Create a federated submission.

    Paid selections return a checkout URL and wait for payment; free
    selections are dispatched straight away.
    """
    try:
        result = await orchestrator.create_federated_submission(
            payload.submission.model_dump(exclude_none=True),
            _selection(payload.directories),
        )
    except FederationError as exc:
        raise http_error(exc) from exc

    session = result.payment_session
    return {
        "federated_submission": result.federated_submission,
        "cost": _cost_response(result.cost),
        "requires_payment": result.requires_payment,
        "payment_session_id": session.session_id if session else None,
        "checkout_url": session.checkout_url if session else None,
        "outcomes": result.outcomes,
    }


@router.post("/{federated_submission_id}/dispatch", response_model=DispatchResponse)
async def dispatch_federated_submission(
    federated_submission_id: int,
    response: Response,
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    """Submit to every directory not yet accepted by its partner."""
    try:
        outcomes = await orchestrator.dispatch(federated_submission_id)
    except FederationError as exc:
        raise http_error(exc) from exc
    federated = orchestrator.load(federated_submission_id)
    return _dispatch_response(response, federated.status, outcomes)


@router.post("/{federated_submission_id}/payment-confirmed", response_model=DispatchResponse)
async def confirm_payment(
    federated_submission_id: int,
    response: Response,
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    """Payment webhook: dispatch once the gateway reports the session settled."""
    try:
        outcomes = await orchestrator.confirm_payment(federated_submission_id)
    except FederationError as exc:
        raise http_error(exc) from exc
    federated = orchestrator.load(federated_submission_id)
    return _dispatch_response(response, federated.status, outcomes)


@router.post("/{federated_submission_id}/retry", response_model=DispatchResponse)
async def retry_failed(
    federated_submission_id: int,
    response: Response,
    retry_coordinator: RetryCoordinatorDep,
) -> dict[str, Any]:
    """Re-dispatch the directories whose last attempt failed."""
    try:
        outcomes = await retry_coordinator.retry_failed(federated_submission_id)
    except FederationError as exc:
        raise http_error(exc) from exc
    federated = retry_coordinator.orchestrator.load(federated_submission_id)
    return _dispatch_response(response, federated.status, outcomes)


@router.get("/{federated_submission_id}/status", response_model=StatusResponse)
async def get_status(
    federated_submission_id: int,
    aggregator: StatusAggregatorDep,
) -> dict[str, Any]:
    """Return a federated submission with its per-directory results."""
    snapshot = aggregator.get_status(federated_submission_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Federated submission not found",
        )
    return {
        "federated_submission": snapshot.federated_submission,
        "results": snapshot.results,
        "summary": snapshot.summary,
    }

"""Shared API dependencies for the federation endpoints."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from launchpad_federation.core.errors import (
    DispatchInProgressError,
    FederationError,
    NotFoundError,
    PaymentError,
    ValidationError,
)
from launchpad_federation.db.session import get_db
from launchpad_federation.services.catalog import DirectoryCatalog
from launchpad_federation.services.orchestrator import SubmissionOrchestrator
from launchpad_federation.services.partner_client import PartnerClient, get_partner_client
from launchpad_federation.services.payments import PaymentGateway, get_payment_gateway
from launchpad_federation.services.registry import PartnerRegistry
from launchpad_federation.services.retry import RetryCoordinator
from launchpad_federation.services.status import StatusAggregator

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_partner_client_dep() -> PartnerClient:
    """Get PartnerClient dependency for dependency injection."""
    return get_partner_client()


def get_payment_gateway_dep() -> PaymentGateway:
    """Get PaymentGateway dependency for dependency injection."""
    return get_payment_gateway()


PartnerClientDep = Annotated[PartnerClient, Depends(get_partner_client_dep)]
PaymentGatewayDep = Annotated[PaymentGateway, Depends(get_payment_gateway_dep)]


def get_registry(db: SessionDep, client: PartnerClientDep) -> PartnerRegistry:
    return PartnerRegistry(db, client)


RegistryDep = Annotated[PartnerRegistry, Depends(get_registry)]


def get_catalog(registry: RegistryDep, client: PartnerClientDep) -> DirectoryCatalog:
    return DirectoryCatalog(registry, client)


CatalogDep = Annotated[DirectoryCatalog, Depends(get_catalog)]


def get_orchestrator(
    db: SessionDep,
    catalog: CatalogDep,
    client: PartnerClientDep,
    payment_gateway: PaymentGatewayDep,
) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(
        db, catalog, client=client, payment_gateway=payment_gateway
    )


OrchestratorDep = Annotated[SubmissionOrchestrator, Depends(get_orchestrator)]


def get_retry_coordinator(orchestrator: OrchestratorDep) -> RetryCoordinator:
    return RetryCoordinator(orchestrator)


def get_status_aggregator(db: SessionDep) -> StatusAggregator:
    return StatusAggregator(db)


RetryCoordinatorDep = Annotated[RetryCoordinator, Depends(get_retry_coordinator)]
StatusAggregatorDep = Annotated[StatusAggregator, Depends(get_status_aggregator)]


def http_error(exc: FederationError) -> HTTPException:
    """Translate a service exception into the matching HTTP error.

    Args:
        exc: Exception raised by a federation service

    Returns:
        HTTPException carrying the exception message as detail
    """
    if isinstance(exc, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, PaymentError):
        code = status.HTTP_402_PAYMENT_REQUIRED
    elif isinstance(exc, DispatchInProgressError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail=str(exc))

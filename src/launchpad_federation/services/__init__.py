# src/launchpad_federation/services/__init__.py
"""Business logic services for federated discovery and submission."""

from .catalog import DirectoryCatalog
from .orchestrator import SubmissionOrchestrator
from .partner_client import PartnerClient
from .registry import PartnerRegistry
from .retry import RetryCoordinator
from .status import StatusAggregator

__all__ = [
    "DirectoryCatalog",
    "PartnerClient",
    "PartnerRegistry",
    "RetryCoordinator",
    "StatusAggregator",
    "SubmissionOrchestrator",
]

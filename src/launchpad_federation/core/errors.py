"""Exception types shared by the federation services.

Partner-level failures are normally represented as data (a failed
FederationResult). Everything else propagates to callers as an exception.
"""

from __future__ import annotations


class FederationError(RuntimeError):
    """Base exception for federation failures."""


class ValidationError(FederationError):
    """Raised when caller input is malformed or incomplete."""


class NotFoundError(FederationError):
    """Raised when an instance or federated submission id is unknown."""


class PartnerUnavailableError(FederationError):
    """Raised by the partner client for network, timeout or non-2xx outcomes.

    Callers in the orchestration layer catch this and record it per
    directory; it never reaches the top-level caller of dispatch/discover.
    Creation raises it when a partner listing needed to price a target
    cannot be fetched.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PaymentError(FederationError):
    """Raised when the payment gateway rejects or has not settled a session."""


class DispatchInProgressError(FederationError):
    """Raised when dispatch or retry is already running for the same id."""

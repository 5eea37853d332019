"""Read-only status summaries for federated submissions."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from sqlalchemy.orm import Session

from launchpad_federation.models import FederatedSubmission, FederationResult
from launchpad_federation.models.federation import (
    RESULT_APPROVED,
    RESULT_FAILED,
    RESULT_PENDING,
    RESULT_REJECTED,
    RESULT_SUBMITTED,
)


@dataclass(frozen=True)
class StatusSummary:
    total_directories: int
    approved_count: int
    rejected_count: int
    failed_count: int
    pending_count: int
    submitted_count: int


@dataclass(frozen=True)
class FederatedSubmissionStatus:
    federated_submission: FederatedSubmission
    results: list[FederationResult]
    summary: StatusSummary


def summarize(federated: FederatedSubmission) -> StatusSummary:
    """Count every target by state; targets without a result yet are pending."""
    by_target = {result.target_key: result.state for result in federated.results}
    counts = Counter(
        by_target.get((target["instance_url"], target["directory_id"]), RESULT_PENDING)
        for target in federated.targets
    )
    return StatusSummary(
        total_directories=len(federated.targets),
        approved_count=counts[RESULT_APPROVED],
        rejected_count=counts[RESULT_REJECTED],
        failed_count=counts[RESULT_FAILED],
        pending_count=counts[RESULT_PENDING],
        submitted_count=counts[RESULT_SUBMITTED],
    )


class StatusAggregator:
    """Join a federated submission with its results and count them by state."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_status(self, federated_submission_id: int) -> FederatedSubmissionStatus | None:
        """Return the submission, its results and a summary, or None if unknown."""
        federated = self.db.get(FederatedSubmission, federated_submission_id)
        if federated is None:
            return None
        return FederatedSubmissionStatus(
            federated_submission=federated,
            results=list(federated.results),
            summary=summarize(federated),
        )

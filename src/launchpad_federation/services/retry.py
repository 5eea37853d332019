"""Selective retry of failed federation results."""

from __future__ import annotations

import logging

from sqlalchemy import select

from launchpad_federation.core.errors import DispatchInProgressError, NotFoundError
from launchpad_federation.db.time import utcnow
from launchpad_federation.models import FederatedSubmission
from launchpad_federation.models.federation import (
    RESULT_FAILED,
    SUBMISSION_FAILED,
    SUBMISSION_PARTIALLY_SUBMITTED,
)
from launchpad_federation.services.orchestrator import (
    DispatchOutcome,
    SubmissionOrchestrator,
    dispatch_guard,
)

logger = logging.getLogger(__name__)


class RetryCoordinator:
    """Re-dispatch only the directories whose last attempt failed.

    Each call is one bounded attempt; scheduling repeated retries (and any
    backoff between them) belongs to the caller, e.g. a cron job running
    ``retry_sweep``.
    """

    def __init__(self, orchestrator: SubmissionOrchestrator) -> None:
        self.orchestrator = orchestrator
        self.db = orchestrator.db

    async def retry_failed(
        self, federated_submission_id: int, deadline: float | None = None
    ) -> list[DispatchOutcome]:
        async with dispatch_guard(self.db, federated_submission_id):
            federated = self.orchestrator.load(federated_submission_id)
            failed = [result for result in federated.results if result.state == RESULT_FAILED]
            if not failed:
                return []

            now = utcnow()
            for result in failed:
                result.retry_count = (result.retry_count or 0) + 1
                result.last_retry_at = now
            self.db.commit()

            logger.info(
                "Retrying %d failed directories for federated submission %s",
                len(failed),
                federated.id,
            )
            outcomes = await self.orchestrator.dispatch_results(
                federated, failed, deadline=deadline
            )
            self.orchestrator.refresh_status(federated)
            return outcomes

    async def retry_sweep(self, limit: int = 50) -> dict[int, list[DispatchOutcome]]:
        """Retry every federated submission that still has failed directories."""
        candidates = list(
            self.db.scalars(
                select(FederatedSubmission.id)
                .where(
                    FederatedSubmission.status.in_(
                        (SUBMISSION_PARTIALLY_SUBMITTED, SUBMISSION_FAILED)
                    )
                )
                .order_by(FederatedSubmission.updated_at)
                .limit(limit)
            )
        )
        swept: dict[int, list[DispatchOutcome]] = {}
        for federated_submission_id in candidates:
            try:
                swept[federated_submission_id] = await self.retry_failed(federated_submission_id)
            except (DispatchInProgressError, NotFoundError) as exc:
                logger.warning(
                    "Skipping federated submission %s in retry sweep: %s",
                    federated_submission_id,
                    exc,
                )
        return swept

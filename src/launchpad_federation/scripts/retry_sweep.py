# src/launchpad_federation/scripts/retry_sweep.py
"""
Cron job to retry federated submissions with failed directories.

Each run makes one attempt per failed directory; the cron schedule sets
the spacing between attempts.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from launchpad_federation.core.settings import settings
from launchpad_federation.db.session import session_scope
from launchpad_federation.services.orchestrator import SubmissionOrchestrator
from launchpad_federation.services.partner_client import get_partner_client
from launchpad_federation.services.retry import RetryCoordinator


async def sweep(limit: int) -> dict[int, tuple[int, int]]:
    """Retry up to ``limit`` submissions; map id to (recovered, still failing)."""
    client = get_partner_client()
    try:
        with session_scope() as db:
            orchestrator = SubmissionOrchestrator(db, client=client)
            swept = await RetryCoordinator(orchestrator).retry_sweep(limit=limit)
    finally:
        await client.close()

    summary: dict[int, tuple[int, int]] = {}
    for federated_submission_id, outcomes in swept.items():
        recovered = sum(1 for outcome in outcomes if outcome.ok)
        summary[federated_submission_id] = (recovered, len(outcomes) - recovered)
    return summary


def main() -> None:
    parser = argparse.ArgumentParser(description="Retry failed federated submissions")
    parser.add_argument(
        "--limit",
        type=int,
        default=settings.retry_sweep_batch_size,
        help="Maximum number of federated submissions to retry in this run",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    summary = asyncio.run(sweep(args.limit))
    for federated_submission_id, (recovered, failing) in summary.items():
        print(f"[retry] submission {federated_submission_id}: {recovered} recovered, {failing} failing")
    print(f"[retry] swept {len(summary)} federated submission(s)")


if __name__ == "__main__":
    main()

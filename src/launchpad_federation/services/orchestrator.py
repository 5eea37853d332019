"""Federated submission orchestration.

This module provides the SubmissionOrchestrator, which turns a local
submission plus a chosen set of partner directories into a persisted
FederatedSubmission, gates it on payment when it costs money, and
dispatches one outbound request per directory with bounded concurrency.

Partner failures are captured as ``DispatchOutcome`` values and stored on
the matching FederationResult; they never abort sibling dispatches and
never propagate to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from launchpad_federation.core.errors import (
    DispatchInProgressError,
    NotFoundError,
    PartnerUnavailableError,
    PaymentError,
    ValidationError,
)
from launchpad_federation.core.settings import settings
from launchpad_federation.db.time import utcnow
from launchpad_federation.models import FederatedSubmission, FederationResult
from launchpad_federation.models.federation import (
    INSTANCE_STATUS_ACTIVE,
    RESULT_FAILED,
    RESULT_PENDING,
    RESULT_SUBMITTED,
    RESULT_SUCCESS_STATES,
    SUBMISSION_FAILED,
    SUBMISSION_PARTIALLY_SUBMITTED,
    SUBMISSION_PENDING_PAYMENT,
    SUBMISSION_PENDING_SUBMISSION,
    SUBMISSION_SUBMITTED,
)
from launchpad_federation.services import cost as cost_calculator
from launchpad_federation.services.catalog import DirectoryCatalog
from launchpad_federation.services.cost import CostBreakdown, Money, SelectedDirectory
from launchpad_federation.services.partner_client import PartnerClient, get_partner_client
from launchpad_federation.services.payments import (
    PaymentGateway,
    PaymentSession,
    get_payment_gateway,
)
from launchpad_federation.services.registry import is_valid_http_url, normalize_base_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionContent:
    """The local submission being published to partner directories."""

    url: str
    owner_ref: str
    submission_ref: str
    title: str | None = None
    description: str | None = None
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SubmissionContent:
        """Validate raw submission fields.

        Raises:
            ValidationError: If the canonical URL or owner reference is
                missing or malformed.
        """
        url = data.get("url")
        if not url:
            raise ValidationError("URL is required")
        if not isinstance(url, str) or not is_valid_http_url(url):
            raise ValidationError("Invalid URL format")

        owner_ref = data.get("owner_ref")
        if owner_ref is None or not str(owner_ref).strip():
            raise ValidationError("Owner reference is required")

        title = data.get("title")
        if title is not None and not isinstance(title, str):
            raise ValidationError("Title must be a string")
        description = data.get("description")
        if description is not None and not isinstance(description, str):
            raise ValidationError("Description must be a string")
        tags = data.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            raise ValidationError("Tags must be a list of strings")

        submission_ref = data.get("submission_ref") or data.get("submission_id") or url
        return cls(
            url=url,
            owner_ref=str(owner_ref).strip(),
            submission_ref=str(submission_ref),
            title=title,
            description=description,
            tags=list(tags),
        )


@dataclass(frozen=True)
class DispatchOutcome:
    """Tagged result of dispatching to one directory."""

    instance_url: str
    directory_id: str
    ok: bool
    state: str
    remote_submission_id: str | None = None
    error: str | None = None
    skipped: bool = False
    response: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CreationResult:
    """Everything the caller needs after creating a federated submission."""

    federated_submission: FederatedSubmission
    cost: CostBreakdown
    payment_session: PaymentSession | None = None
    outcomes: list[DispatchOutcome] = field(default_factory=list)

    @property
    def requires_payment(self) -> bool:
        return self.cost.requires_payment


def compute_aggregate_status(states: Iterable[str], current: str) -> str:
    """Derive a FederatedSubmission status from its result states.

    Results still ``pending`` without any failure leave the status as is.
    """
    states = list(states)
    if not states:
        return current
    succeeded = sum(1 for state in states if state in RESULT_SUCCESS_STATES)
    failed = sum(1 for state in states if state == RESULT_FAILED)
    if succeeded == len(states):
        return SUBMISSION_SUBMITTED
    if failed and not succeeded:
        return SUBMISSION_FAILED
    if failed:
        return SUBMISSION_PARTIALLY_SUBMITTED
    return current


def claim_dispatch(db: Session, federated_submission_id: int) -> None:
    """Mark the row as owned by this dispatch, across every worker process.

    Raises:
        NotFoundError: If the federated submission does not exist.
        DispatchInProgressError: If a live claim is held elsewhere.
    """
    now = utcnow()
    stale_before = now - timedelta(seconds=settings.dispatch_claim_ttl_seconds)
    claimed = db.execute(
        update(FederatedSubmission)
        .where(FederatedSubmission.id == federated_submission_id)
        .where(
            or_(
                FederatedSubmission.dispatch_started_at.is_(None),
                FederatedSubmission.dispatch_started_at < stale_before,
            )
        )
        .values(dispatch_started_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    if claimed:
        return
    if db.get(FederatedSubmission, federated_submission_id) is None:
        raise NotFoundError(f"Federated submission {federated_submission_id} not found")
    raise DispatchInProgressError(
        f"Dispatch already running for federated submission {federated_submission_id}"
    )


def release_dispatch(db: Session, federated_submission_id: int) -> None:
    if not db.is_active:
        db.rollback()
    db.execute(
        update(FederatedSubmission)
        .where(FederatedSubmission.id == federated_submission_id)
        .values(dispatch_started_at=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()


@asynccontextmanager
async def dispatch_guard(db: Session, federated_submission_id: int) -> AsyncIterator[None]:
    """Hold the row-level dispatch claim for one federated submission."""
    claim_dispatch(db, federated_submission_id)
    try:
        yield
    finally:
        release_dispatch(db, federated_submission_id)


class SubmissionOrchestrator:
    """Create, pay for and dispatch federated submissions."""

    def __init__(
        self,
        db: Session,
        catalog: DirectoryCatalog | None = None,
        *,
        client: PartnerClient | None = None,
        payment_gateway: PaymentGateway | None = None,
    ) -> None:
        self.db = db
        self.catalog = catalog
        self.client = client or get_partner_client()
        self.payment_gateway = payment_gateway or get_payment_gateway()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_federated_submission(
        self,
        submission: Mapping[str, Any],
        selection: Sequence[SelectedDirectory],
    ) -> CreationResult:
        """Persist a federated submission and start payment or dispatch."""
        content = SubmissionContent.from_mapping(submission)
        if not selection:
            raise ValidationError("At least one directory must be selected")

        targets = await self._resolve_selection(selection)
        breakdown = cost_calculator.calculate(targets)

        federated = FederatedSubmission(
            submission_ref=content.submission_ref,
            owner_ref=content.owner_ref,
            url=content.url,
            title=content.title,
            description=content.description,
            tags=content.tags,
            targets=[
                {
                    "instance_url": target.instance_url,
                    "directory_id": target.directory_id,
                    "amount": str(target.fee.amount),
                    "currency": target.fee.currency,
                }
                for target in targets
            ],
            total_cost=breakdown.total,
            currency=breakdown.currency,
            status=(
                SUBMISSION_PENDING_PAYMENT
                if breakdown.requires_payment
                else SUBMISSION_PENDING_SUBMISSION
            ),
        )
        self.db.add(federated)
        self.db.commit()
        self.db.refresh(federated)
        logger.info(
            "Created federated submission %s for %s (%d directories, %s %s)",
            federated.id,
            content.url,
            len(targets),
            breakdown.total,
            breakdown.currency,
        )

        result = CreationResult(federated_submission=federated, cost=breakdown)
        if breakdown.requires_payment:
            # A gateway failure leaves the row in pending_payment.
            session = await self.payment_gateway.create_session(
                breakdown.total,
                breakdown.currency,
                {
                    "federated_submission_id": federated.id,
                    "submission_ref": content.submission_ref,
                    "directories": [
                        f"{target.instance_url}#{target.directory_id}" for target in targets
                    ],
                },
            )
            federated.payment_session_id = session.session_id
            federated.checkout_url = session.checkout_url
            self.db.commit()
            result.payment_session = session
            return result

        result.outcomes = await self.dispatch(federated.id)
        return result

    async def _resolve_selection(
        self, selection: Sequence[SelectedDirectory]
    ) -> list[SelectedDirectory]:
        normalized: list[SelectedDirectory] = []
        seen: set[tuple[str, str]] = set()
        for item in selection:
            if not is_valid_http_url(item.instance_url):
                raise ValidationError(f"Invalid instance URL: {item.instance_url}")
            if not item.directory_id:
                raise ValidationError("Directory id is required")
            target = SelectedDirectory(
                instance_url=normalize_base_url(item.instance_url),
                directory_id=item.directory_id,
                fee=item.fee,
            )
            if target.key in seen:
                raise ValidationError(
                    f"Directory selected twice: {target.instance_url} / {target.directory_id}"
                )
            seen.add(target.key)
            normalized.append(target)

        if self.catalog is None or not settings.validate_targets_against_catalog:
            return normalized

        # Fees always come from the partner's own listing, never from the caller.
        advertised = {directory.key: directory for directory in await self.catalog.discover()}
        listed_instances = {instance_url for instance_url, _ in advertised}
        active_instances = {
            instance.base_url
            for instance in self.catalog.registry.list_known(status=INSTANCE_STATUS_ACTIVE)
        }

        resolved: list[SelectedDirectory] = []
        for target in normalized:
            directory = advertised.get(target.key)
            if directory is not None:
                resolved.append(
                    SelectedDirectory(target.instance_url, target.directory_id, directory.fee)
                )
                continue
            if target.instance_url not in active_instances:
                raise ValidationError(f"Unknown or inactive instance: {target.instance_url}")
            if target.instance_url in listed_instances:
                raise ValidationError(
                    f"Unknown directory: {target.instance_url} / {target.directory_id}"
                )
            logger.warning(
                "Cannot confirm %s / %s: partner listing unavailable",
                target.instance_url,
                target.directory_id,
            )
            raise PartnerUnavailableError(
                f"Directory listing for {target.instance_url} is unavailable; try again later"
            )
        return resolved

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def confirm_payment(self, federated_submission_id: int) -> list[DispatchOutcome]:
        """Dispatch a paid submission once its payment session has settled."""
        federated = self.load(federated_submission_id)
        if federated.status == SUBMISSION_PENDING_PAYMENT:
            if not federated.payment_session_id:
                raise PaymentError("No payment session recorded for this submission")
            if not await self.payment_gateway.is_settled(federated.payment_session_id):
                raise PaymentError("Payment has not settled yet")
            federated.status = SUBMISSION_PENDING_SUBMISSION
            self.db.commit()
            logger.info("Payment settled for federated submission %s", federated.id)
        return await self.dispatch(federated_submission_id)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def load(self, federated_submission_id: int) -> FederatedSubmission:
        federated = self.db.get(FederatedSubmission, federated_submission_id)
        if federated is None:
            raise NotFoundError(f"Federated submission {federated_submission_id} not found")
        return federated

    def ensure_results(self, federated: FederatedSubmission) -> list[FederationResult]:
        """Create a pending FederationResult for every target lacking one."""
        existing = {result.target_key: result for result in federated.results}
        for target in federated.targets:
            key = (target["instance_url"], target["directory_id"])
            if key not in existing:
                result = FederationResult(
                    instance_url=key[0],
                    directory_id=key[1],
                    state=RESULT_PENDING,
                )
                federated.results.append(result)
                existing[key] = result
        self.db.commit()
        return [
            existing[(target["instance_url"], target["directory_id"])]
            for target in federated.targets
        ]

    async def dispatch(
        self, federated_submission_id: int, deadline: float | None = None
    ) -> list[DispatchOutcome]:
        """Submit to every directory not yet accepted by its partner.

        Safe to call repeatedly: directories already ``submitted`` (or
        confirmed by the partner) are reported as skipped and not contacted.
        """
        async with dispatch_guard(self.db, federated_submission_id):
            federated = self.load(federated_submission_id)
            if federated.status == SUBMISSION_PENDING_PAYMENT:
                raise PaymentError("Payment required before submission")

            results = self.ensure_results(federated)
            to_send = [result for result in results if result.state not in RESULT_SUCCESS_STATES]
            sent = await self.dispatch_results(federated, to_send, deadline=deadline)

            by_key = {outcome_key(outcome): outcome for outcome in sent}
            outcomes = [
                by_key.get(result.target_key) or skipped_outcome(result) for result in results
            ]
            self.refresh_status(federated)
            return outcomes

    async def dispatch_results(
        self,
        federated: FederatedSubmission,
        results: Sequence[FederationResult],
        deadline: float | None = None,
    ) -> list[DispatchOutcome]:
        """Fan out to the given results and record every outcome.

        At most ``DISPATCH_CONCURRENCY`` requests run at once. Requests still
        running when the aggregate deadline passes are cancelled and
        recorded as failed.
        """
        if not results:
            return []

        semaphore = asyncio.Semaphore(max(1, settings.dispatch_concurrency))

        async def _bounded(result: FederationResult, payload: dict[str, Any]) -> DispatchOutcome:
            async with semaphore:
                return await self._submit_one(result.instance_url, result.directory_id, payload)

        tasks = [
            asyncio.create_task(_bounded(result, self.build_payload(federated, result)))
            for result in results
        ]
        timeout = deadline if deadline is not None else settings.dispatch_deadline_seconds
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: list[DispatchOutcome] = []
        for result, task in zip(results, tasks, strict=True):
            if task in pending:
                outcome = DispatchOutcome(
                    instance_url=result.instance_url,
                    directory_id=result.directory_id,
                    ok=False,
                    state=RESULT_FAILED,
                    error=f"Dispatch deadline exceeded after {timeout:g}s",
                )
            else:
                outcome = task.result()
            self._apply_outcome(result, outcome)
            outcomes.append(outcome)
        self.db.commit()
        return outcomes

    def build_payload(
        self, federated: FederatedSubmission, result: FederationResult
    ) -> dict[str, Any]:
        return {
            "url": federated.url,
            "title": federated.title,
            "description": federated.description,
            "tags": list(federated.tags or []),
            "directory_id": result.directory_id,
            "source_instance": settings.federation_instance_id,
            "federation_submission_id": str(federated.id),
        }

    async def _submit_one(
        self, instance_url: str, directory_id: str, payload: dict[str, Any]
    ) -> DispatchOutcome:
        try:
            body = await self.client.submit(instance_url, payload)
        except PartnerUnavailableError as exc:
            logger.warning("Submission failed for %s / %s: %s", instance_url, directory_id, exc)
            return DispatchOutcome(
                instance_url=instance_url,
                directory_id=directory_id,
                ok=False,
                state=RESULT_FAILED,
                error=str(exc),
            )
        return DispatchOutcome(
            instance_url=instance_url,
            directory_id=directory_id,
            ok=True,
            state=RESULT_SUBMITTED,
            remote_submission_id=str(body["submission_id"]),
            response=body,
        )

    @staticmethod
    def _apply_outcome(result: FederationResult, outcome: DispatchOutcome) -> None:
        now = utcnow()
        result.state = outcome.state
        result.updated_at = now
        if outcome.ok:
            result.remote_submission_id = outcome.remote_submission_id
            result.error_message = None
            result.submitted_at = now
            result.response_data = outcome.response
        else:
            result.error_message = outcome.error

    def refresh_status(self, federated: FederatedSubmission) -> str:
        """Recompute and persist the aggregate status from result states."""
        new_status = compute_aggregate_status(
            (result.state for result in federated.results), federated.status
        )
        if new_status != federated.status:
            logger.info(
                "Federated submission %s: %s -> %s", federated.id, federated.status, new_status
            )
            federated.status = new_status
        self.db.commit()
        return new_status


def outcome_key(outcome: DispatchOutcome) -> tuple[str, str]:
    return (outcome.instance_url, outcome.directory_id)


def skipped_outcome(result: FederationResult) -> DispatchOutcome:
    return DispatchOutcome(
        instance_url=result.instance_url,
        directory_id=result.directory_id,
        ok=True,
        state=result.state,
        remote_submission_id=result.remote_submission_id,
        skipped=True,
    )


def selection_from_payload(items: Iterable[Mapping[str, Any]]) -> list[SelectedDirectory]:
    """Build SelectedDirectory values from request payload dictionaries."""
    selection: list[SelectedDirectory] = []
    for item in items:
        instance_url = item.get("instance_url")
        directory_id = item.get("directory_id")
        if not instance_url or not directory_id:
            raise ValidationError("Each directory needs instance_url and directory_id")
        selection.append(
            SelectedDirectory(
                instance_url=str(instance_url),
                directory_id=str(directory_id),
                fee=Money.parse(item.get("fee"), settings.default_currency),
            )
        )
    return selection


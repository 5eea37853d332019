# src/launchpad_federation/models/federation.py
"""SQLAlchemy models for partner instances and federated submissions."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    VARCHAR,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    SmallInteger,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from launchpad_federation.db.session import Base
from launchpad_federation.db.time import utcnow

INSTANCE_STATUS_UNVERIFIED = "unverified"
INSTANCE_STATUS_ACTIVE = "active"
INSTANCE_STATUS_INACTIVE = "inactive"
INSTANCE_STATUSES = frozenset(
    {INSTANCE_STATUS_UNVERIFIED, INSTANCE_STATUS_ACTIVE, INSTANCE_STATUS_INACTIVE}
)

SUBMISSION_PENDING_PAYMENT = "pending_payment"
SUBMISSION_PENDING_SUBMISSION = "pending_submission"
SUBMISSION_SUBMITTED = "submitted"
SUBMISSION_PARTIALLY_SUBMITTED = "partially_submitted"
SUBMISSION_FAILED = "failed"

RESULT_PENDING = "pending"
RESULT_SUBMITTED = "submitted"
RESULT_APPROVED = "approved"
RESULT_REJECTED = "rejected"
RESULT_FAILED = "failed"
# States in which the partner has accepted the submission; never re-dispatched.
RESULT_SUCCESS_STATES = frozenset({RESULT_SUBMITTED, RESULT_APPROVED, RESULT_REJECTED})


class FederationInstance(Base):
    """A remote, independently operated directory instance."""

    __tablename__ = "federation_instance"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    name: Mapped[str] = mapped_column(VARCHAR(255), nullable=False)
    base_url: Mapped[str] = mapped_column(VARCHAR(500), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_email: Mapped[str] = mapped_column(VARCHAR(255), nullable=False)
    status: Mapped[str] = mapped_column(
        VARCHAR(20), nullable=False, default=INSTANCE_STATUS_UNVERIFIED, index=True
    )  # 'unverified', 'active', 'inactive'
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Metadata reported by the partner's health and info endpoints.
    version: Mapped[str | None] = mapped_column(VARCHAR(50), nullable=True)
    api_version: Mapped[str | None] = mapped_column(VARCHAR(20), nullable=True)
    federation_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    supported_features: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    last_health_check_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Consecutive failed health checks; reset on a healthy ping.
    error_count: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)


class FederatedSubmission(Base):
    """One local submission published to a fixed set of partner directories."""

    __tablename__ = "federated_submission"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    submission_ref: Mapped[str] = mapped_column(VARCHAR(255), nullable=False, index=True)
    owner_ref: Mapped[str] = mapped_column(VARCHAR(255), nullable=False, index=True)

    # Snapshot of the published content, used to rebuild the payload on retry.
    url: Mapped[str] = mapped_column(VARCHAR(2048), nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Immutable after creation: [{instance_url, directory_id, amount, currency}, ...]
    targets: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)

    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(VARCHAR(3), nullable=False)
    # Null means the submission was free and never needed a payment session.
    payment_session_id: Mapped[str | None] = mapped_column(VARCHAR(255), nullable=True)
    checkout_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(VARCHAR(30), nullable=False, index=True)
    # Set while a dispatch or retry owns the row; claimed with a conditional UPDATE.
    dispatch_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    results: Mapped[list[FederationResult]] = relationship(
        back_populates="federated_submission",
        cascade="all, delete-orphan",
        order_by="FederationResult.id",
    )


class FederationResult(Base):
    """Per-directory outcome of a federated submission; the unit of retry."""

    __tablename__ = "federation_result"
    __table_args__ = (
        UniqueConstraint(
            "federated_submission_id",
            "instance_url",
            "directory_id",
            name="uq_federation_result_target",
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    federated_submission_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("federated_submission.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    instance_url: Mapped[str] = mapped_column(VARCHAR(500), nullable=False)
    directory_id: Mapped[str] = mapped_column(VARCHAR(255), nullable=False)
    # pending -> submitted | failed; approved / rejected may follow submitted.
    state: Mapped[str] = mapped_column(
        VARCHAR(20), nullable=False, default=RESULT_PENDING, index=True
    )
    remote_submission_id: Mapped[str | None] = mapped_column(VARCHAR(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    retry_count: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    last_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    federated_submission: Mapped[FederatedSubmission] = relationship(back_populates="results")

    @property
    def target_key(self) -> tuple[str, str]:
        return (self.instance_url, self.directory_id)

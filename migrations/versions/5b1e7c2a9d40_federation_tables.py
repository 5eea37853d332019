"""federation tables

Revision ID: 5b1e7c2a9d40
Revises:
Create Date: 2026-10-16 09:12:41.512307

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5b1e7c2a9d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Create partner instance, federated submission and result tables."""
    op.create_table(
        "federation_instance",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("name", sa.VARCHAR(255), nullable=False),
        sa.Column("base_url", sa.VARCHAR(500), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("admin_email", sa.VARCHAR(255), nullable=False),
        sa.Column("status", sa.VARCHAR(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.VARCHAR(50), nullable=True),
        sa.Column("api_version", sa.VARCHAR(20), nullable=True),
        sa.Column("federation_enabled", sa.Boolean(), nullable=False),
        sa.Column("supported_features", sa.JSON(), nullable=False),
        sa.Column("last_health_check_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_count", sa.SmallInteger(), nullable=False),
    )
    op.create_index(
        "ix_federation_instance_status", "federation_instance", ["status"]
    )

    op.create_table(
        "federated_submission",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("submission_ref", sa.VARCHAR(255), nullable=False),
        sa.Column("owner_ref", sa.VARCHAR(255), nullable=False),
        sa.Column("url", sa.VARCHAR(2048), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("targets", sa.JSON(), nullable=False),
        sa.Column("total_cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.VARCHAR(3), nullable=False),
        sa.Column("payment_session_id", sa.VARCHAR(255), nullable=True),
        sa.Column("checkout_url", sa.Text(), nullable=True),
        sa.Column("status", sa.VARCHAR(30), nullable=False),
        sa.Column("dispatch_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_federated_submission_submission_ref", "federated_submission", ["submission_ref"]
    )
    op.create_index("ix_federated_submission_owner_ref", "federated_submission", ["owner_ref"])
    op.create_index("ix_federated_submission_status", "federated_submission", ["status"])

    op.create_table(
        "federation_result",
        sa.Column("id", _ID, primary_key=True),
        sa.Column(
            "federated_submission_id",
            _ID,
            sa.ForeignKey("federated_submission.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("instance_url", sa.VARCHAR(500), nullable=False),
        sa.Column("directory_id", sa.VARCHAR(255), nullable=False),
        sa.Column("state", sa.VARCHAR(20), nullable=False),
        sa.Column("remote_submission_id", sa.VARCHAR(255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("response_data", sa.JSON(), nullable=False),
        sa.Column("retry_count", sa.SmallInteger(), nullable=False),
        sa.Column("last_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "federated_submission_id",
            "instance_url",
            "directory_id",
            name="uq_federation_result_target",
        ),
    )
    op.create_index(
        "ix_federation_result_federated_submission_id",
        "federation_result",
        ["federated_submission_id"],
    )
    op.create_index("ix_federation_result_state", "federation_result", ["state"])


def downgrade() -> None:
    """Drop the federation tables."""
    op.drop_index("ix_federation_result_state", table_name="federation_result")
    op.drop_index(
        "ix_federation_result_federated_submission_id", table_name="federation_result"
    )
    op.drop_table("federation_result")
    op.drop_index("ix_federated_submission_status", table_name="federated_submission")
    op.drop_index("ix_federated_submission_owner_ref", table_name="federated_submission")
    op.drop_index("ix_federated_submission_submission_ref", table_name="federated_submission")
    op.drop_table("federated_submission")
    op.drop_index("ix_federation_instance_status", table_name="federation_instance")
    op.drop_table("federation_instance")

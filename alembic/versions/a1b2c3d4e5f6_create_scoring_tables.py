"""create scoring tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "leads",
        sa.Column("lead_id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("company", sa.String(255)),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        sa.Column("current_score", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_sequence", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("ledger_version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("score_version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("email", name="uq_leads_email"),
        sa.CheckConstraint("current_score >= 0", name="ck_lead_score_non_negative"),
        sa.CheckConstraint(
            "status IN ('new', 'contacted', 'qualified', 'converted', 'lost')",
            name="ck_lead_status",
        ),
    )
    op.create_index("ix_leads_current_score", "leads", ["current_score"])

    op.create_table(
        "scoring_rules",
        sa.Column("event_type", sa.String(50), primary_key=True),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "scoring_events",
        sa.Column("event_id", sa.String(255), primary_key=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column(
            "lead_id",
            sa.Uuid(),
            sa.ForeignKey("leads.lead_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("sequence", sa.Integer()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("lead_id", "sequence", name="uq_scoring_events_lead_sequence"),
    )
    op.create_index(
        "ix_scoring_events_lead_processed_ts",
        "scoring_events",
        ["lead_id", "processed", "timestamp", "sequence"],
    )

    op.create_table(
        "score_history",
        sa.Column(
            "lead_id",
            sa.Uuid(),
            sa.ForeignKey("leads.lead_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("sequence", sa.Integer(), primary_key=True),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("previous_score", sa.Integer(), nullable=False),
        sa.Column("change", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("score >= 0", name="ck_history_score_non_negative"),
        sa.CheckConstraint("previous_score >= 0", name="ck_history_previous_non_negative"),
    )
    op.create_index(
        "ix_score_history_lead_ts_seq",
        "score_history",
        ["lead_id", "timestamp", "sequence"],
    )

    # No FK on lead_id: jobs for unknown leads must be accepted and dead-lettered
    op.create_table(
        "scoring_jobs",
        sa.Column("job_id", sa.String(255), primary_key=True),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(20), nullable=False, server_default="waiting"),
        sa.Column("attempts_made", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("failed_reason", sa.Text()),
        sa.Column("return_value", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_on", sa.DateTime(timezone=True)),
        sa.Column("finished_on", sa.DateTime(timezone=True)),
        sa.CheckConstraint(
            "state IN ('waiting', 'active', 'completed', 'failed', 'delayed')",
            name="ck_scoring_job_state",
        ),
        sa.CheckConstraint("attempts_made >= 0", name="ck_scoring_job_attempts"),
    )
    op.create_index(
        "ix_scoring_jobs_claim",
        "scoring_jobs",
        ["state", "priority", "next_run_at", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_scoring_jobs_claim", table_name="scoring_jobs")
    op.drop_table("scoring_jobs")
    op.drop_index("ix_score_history_lead_ts_seq", table_name="score_history")
    op.drop_table("score_history")
    op.drop_index("ix_scoring_events_lead_processed_ts", table_name="scoring_events")
    op.drop_table("scoring_events")
    op.drop_table("scoring_rules")
    op.drop_index("ix_leads_current_score", table_name="leads")
    op.drop_table("leads")

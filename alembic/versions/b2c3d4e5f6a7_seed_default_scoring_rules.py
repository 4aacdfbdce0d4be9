"""seed default scoring rules

Revision ID: b2c3d4e5f6a7
Revises: a1b2c3d4e5f6
Create Date: 2026-10-12 09:30:00.000000

Inserts the canonical per-event-type rules into ``scoring_rules``.
Uses INSERT … WHERE NOT EXISTS so the migration is fully idempotent
and leaves operator-edited rules alone.

The rule values are derived from ``app.core.default_scoring_rules``.
Do NOT edit values here directly; update DEFAULT_SCORING_RULES in
that module, then regenerate this migration.
"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b2c3d4e5f6a7"
down_revision: Union[str, None] = "a1b2c3d4e5f6"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Import at migration-generation time so values stay in sync.
from app.core.default_scoring_rules import DEFAULT_SCORING_RULES  # noqa: E402


def upgrade() -> None:
    for rule in DEFAULT_SCORING_RULES:
        event_type = rule["event_type"].replace("'", "''")
        points = int(rule["points"])
        description = rule["description"].replace("'", "''")

        op.execute(
            f"""
            INSERT INTO scoring_rules
                (event_type, points, active, description, created_at, updated_at)
            SELECT '{event_type}', {points}, TRUE, '{description}',
                   CURRENT_TIMESTAMP, CURRENT_TIMESTAMP
            WHERE NOT EXISTS (
                SELECT 1 FROM scoring_rules WHERE event_type = '{event_type}'
            );
            """
        )


def downgrade() -> None:
    # Remove only the rules we seeded (by event type)
    for rule in DEFAULT_SCORING_RULES:
        event_type = rule["event_type"].replace("'", "''")
        op.execute(f"DELETE FROM scoring_rules WHERE event_type = '{event_type}';")

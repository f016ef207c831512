"""insights table

Revision ID: 0002_insights
Revises: 0001_initial
Create Date: 2024-02-01 00:00:00.000000
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0002_insights"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "insights",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("insight_type", sa.String(20), nullable=True),
        sa.Column("time_period", sa.String(20), nullable=False),
        sa.Column("compared_with", sa.String(20), nullable=False),
        sa.Column("percentage_change", sa.Float(), nullable=True),
        sa.Column("metric_type", sa.String(20), nullable=True),
        sa.Column("metric_value", sa.Float(), nullable=True),
        sa.Column("related_tags", sa.JSON(), nullable=True),
        sa.Column("related_ticket_ids", sa.JSON(), nullable=True),
        sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_insights_user_id", "insights", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_insights_user_id", table_name="insights")
    op.drop_table("insights")

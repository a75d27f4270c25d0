"""Usage periods migration.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the usage_periods table holding per-user counters for one billing
period.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "usage_periods",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tier", sa.String(20), nullable=False, server_default="STARTER"),
        # [period_start, period_end), naive UTC
        sa.Column("period_start", sa.DateTime(), nullable=False),
        sa.Column("period_end", sa.DateTime(), nullable=False),
        # Counters
        sa.Column("services_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("discounts_saved", sa.Float(), nullable=False, server_default="0"),
        sa.Column("discounts_overflow", sa.Float(), nullable=False, server_default="0"),
        sa.Column("priority_bookings", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("emergency_services", sa.Integer(), nullable=False, server_default="0"),
        # Timestamps
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "period_start", name="uq_usage_periods_user_period"),
        sa.CheckConstraint(
            "services_used >= 0 AND discounts_saved >= 0 AND discounts_overflow >= 0 "
            "AND priority_bookings >= 0 AND emergency_services >= 0",
            name="ck_usage_periods_non_negative",
        ),
    )
    op.create_index("ix_usage_periods_user_id", "usage_periods", ["user_id"])
    op.create_index(
        "ix_usage_periods_period_window",
        "usage_periods",
        ["period_start", "period_end"],
    )


def downgrade() -> None:
    op.drop_index("ix_usage_periods_period_window", table_name="usage_periods")
    op.drop_index("ix_usage_periods_user_id", table_name="usage_periods")
    op.drop_table("usage_periods")

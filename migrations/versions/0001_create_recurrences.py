"""create recurrences table"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_create_recurrences"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "recurrences",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("interval", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("interval_unit", sa.String(length=10), nullable=True),
        sa.Column("weekdays", sa.String(length=80), nullable=True),
        sa.Column("month_day", sa.Integer(), nullable=True),
        sa.Column("month_week", sa.Integer(), nullable=True),
        sa.Column("month_weekday", sa.String(length=10), nullable=True),
        sa.Column("end_type", sa.String(length=10), nullable=False, server_default="never"),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("end_count", sa.Integer(), nullable=True),
        sa.Column("start_at", sa.DateTime(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default="medium"),
        sa.Column("occurrences_generated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_generated_at", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_recurrences_user_id", "recurrences", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_recurrences_user_id", table_name="recurrences")
    op.drop_table("recurrences")

"""Add monthly_summaries table

Revision ID: 0002_monthly_summaries
Revises: 0001_core_tables
Create Date: 2026-09-03 14:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002_monthly_summaries"
down_revision: Union[str, None] = "0001_core_tables"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

monthly_summary_status = postgresql.ENUM(
    "DRAFT",
    "SIGNED_BY_STAFF",
    "APPROVED",
    "REJECTED",
    name="monthly_summary_status",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    monthly_summary_status.create(bind, checkfirst=True)

    op.create_table(
        "monthly_summaries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("total_working_days", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_worked_hours", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_ot_hours", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("approved_leaves", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("absent_days", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "project_breakdown",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("status", monthly_summary_status, nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("staff_signature", sa.Text(), nullable=True),
        sa.Column("staff_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("staff_signed_by", sa.String(length=255), nullable=True),
        sa.Column("admin_signature", sa.Text(), nullable=True),
        sa.Column("admin_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_approved_by", sa.String(length=255), nullable=True),
        sa.Column("admin_remarks", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "month", "year", name="uq_monthly_summaries_employee_period"),
        sa.CheckConstraint("month >= 1 AND month <= 12", name="ck_monthly_summaries_month"),
    )
    op.create_index("ix_monthly_summaries_employee_id", "monthly_summaries", ["employee_id"], unique=False)
    op.create_index("ix_monthly_summaries_status", "monthly_summaries", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_monthly_summaries_status", table_name="monthly_summaries")
    op.drop_index("ix_monthly_summaries_employee_id", table_name="monthly_summaries")
    op.drop_table("monthly_summaries")

    bind = op.get_bind()
    monthly_summary_status.drop(bind, checkfirst=True)

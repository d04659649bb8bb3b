"""Add financial and invoice columns to monthly_summaries

Revision ID: 0003_summary_financials
Revises: 0002_monthly_summaries
Create Date: 2026-09-10 11:05:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0003_summary_financials"
down_revision: Union[str, None] = "0002_monthly_summaries"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

payment_type = postgresql.ENUM("hourly", "daily", "monthly", "contract", name="payment_type", create_type=False)


def upgrade() -> None:
    op.add_column("monthly_summaries", sa.Column("payment_type", payment_type, nullable=True))
    op.add_column(
        "monthly_summaries",
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
    )
    op.add_column(
        "monthly_summaries",
        sa.Column("tax_percentage", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
    )
    op.add_column(
        "monthly_summaries",
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
    )
    op.add_column(
        "monthly_summaries",
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
    )
    op.add_column("monthly_summaries", sa.Column("invoice_number", sa.String(length=64), nullable=True))
    op.create_index(
        "ix_monthly_summaries_invoice_number",
        "monthly_summaries",
        ["invoice_number"],
        unique=True,
    )
    op.create_check_constraint(
        "ck_monthly_summaries_tax_percentage",
        "monthly_summaries",
        "tax_percentage >= 0 AND tax_percentage <= 100",
    )


def downgrade() -> None:
    op.drop_constraint("ck_monthly_summaries_tax_percentage", "monthly_summaries", type_="check")
    op.drop_index("ix_monthly_summaries_invoice_number", table_name="monthly_summaries")
    op.drop_column("monthly_summaries", "invoice_number")
    op.drop_column("monthly_summaries", "total_amount")
    op.drop_column("monthly_summaries", "tax_amount")
    op.drop_column("monthly_summaries", "tax_percentage")
    op.drop_column("monthly_summaries", "subtotal")
    op.drop_column("monthly_summaries", "payment_type")

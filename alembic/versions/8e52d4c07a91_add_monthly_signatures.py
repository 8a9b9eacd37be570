"""add monthly_signatures

Revision ID: 8e52d4c07a91
Revises: 3c1f0a9d2b7e
Create Date: 2026-03-05 16:40:03.881230

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8e52d4c07a91'
down_revision: Union[str, Sequence[str], None] = '3c1f0a9d2b7e'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "monthly_signatures",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.String(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("signature_image", sa.Text(), nullable=False),
        sa.Column("signed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], name="fk_monthly_signatures_employee_id"),
        sa.UniqueConstraint("employee_id", "month", "year", name="uq_monthly_signatures_employee_month"),
        sa.CheckConstraint("month >= 1 AND month <= 12", name="ck_monthly_signatures_month"),
    )
    op.create_index("ix_monthly_signatures_id", "monthly_signatures", ["id"], unique=False)
    op.create_index("ix_monthly_signatures_company_id", "monthly_signatures", ["company_id"], unique=False)
    op.create_index("ix_monthly_signatures_employee_id", "monthly_signatures", ["employee_id"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_monthly_signatures_employee_id", table_name="monthly_signatures")
    op.drop_index("ix_monthly_signatures_company_id", table_name="monthly_signatures")
    op.drop_index("ix_monthly_signatures_id", table_name="monthly_signatures")
    op.drop_table("monthly_signatures")

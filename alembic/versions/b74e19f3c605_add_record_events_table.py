"""add record_events table

Revision ID: b74e19f3c605
Revises: 8e52d4c07a91
Create Date: 2026-03-11 11:02:56.417719

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b74e19f3c605'
down_revision: Union[str, Sequence[str], None] = '8e52d4c07a91'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "record_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.String(), nullable=False),
        sa.Column("record_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("row_hash", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_record_events_company_id", "record_events", ["company_id"], unique=False)
    op.create_index("ix_record_events_employee_id", "record_events", ["employee_id"], unique=False)
    op.create_index("ix_record_events_record_id", "record_events", ["record_id"], unique=False)
    op.create_index("ix_record_events_company_id_id", "record_events", ["company_id", "id"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_record_events_company_id_id", table_name="record_events")
    op.drop_index("ix_record_events_record_id", table_name="record_events")
    op.drop_index("ix_record_events_employee_id", table_name="record_events")
    op.drop_index("ix_record_events_company_id", table_name="record_events")
    op.drop_table("record_events")

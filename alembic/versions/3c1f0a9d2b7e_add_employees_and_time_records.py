"""add employees and time_records

Revision ID: 3c1f0a9d2b7e
Revises:
Create Date: 2026-03-02 09:14:27.104512

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f0a9d2b7e'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "employees",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("contracted_hours_per_week", sa.Integer(), nullable=False, server_default="40"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "contracted_hours_per_week >= 0",
            name="ck_employees_contracted_hours_nonnegative",
        ),
    )
    op.create_index("ix_employees_id", "employees", ["id"], unique=False)
    op.create_index("ix_employees_company_id", "employees", ["company_id"], unique=False)

    op.create_table(
        "time_records",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.String(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("type", sa.String(), nullable=False, server_default="work"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("parent_hash", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("row_hash", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], name="fk_time_records_employee_id"),
        sa.UniqueConstraint("employee_id", "parent_hash", name="uq_time_records_chain_link"),
        sa.CheckConstraint("type IN ('work', 'break')", name="ck_time_records_type"),
        sa.CheckConstraint("duration_minutes >= 0", name="ck_time_records_duration_nonnegative"),
    )
    op.create_index("ix_time_records_id", "time_records", ["id"], unique=False)
    op.create_index("ix_time_records_company_id", "time_records", ["company_id"], unique=False)
    op.create_index("ix_time_records_employee_id", "time_records", ["employee_id"], unique=False)
    op.create_index(
        "ix_time_records_employee_start",
        "time_records",
        ["employee_id", "start_time"],
        unique=False,
    )

    # At most one open record per employee.
    op.create_index(
        "uq_time_records_open",
        "time_records",
        ["employee_id"],
        unique=True,
        postgresql_where=sa.text("end_time IS NULL"),
        sqlite_where=sa.text("end_time IS NULL"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("uq_time_records_open", table_name="time_records")
    op.drop_index("ix_time_records_employee_start", table_name="time_records")
    op.drop_index("ix_time_records_employee_id", table_name="time_records")
    op.drop_index("ix_time_records_company_id", table_name="time_records")
    op.drop_index("ix_time_records_id", table_name="time_records")
    op.drop_table("time_records")

    op.drop_index("ix_employees_company_id", table_name="employees")
    op.drop_index("ix_employees_id", table_name="employees")
    op.drop_table("employees")

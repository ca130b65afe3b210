"""add universities, programs and intakes

Revision ID: 0002_program_catalog
Revises: 0001_initial
Create Date: 2026-10-17 00:10:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002_program_catalog"
down_revision: Union[str, Sequence[str], None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "universities",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("country", sa.String(length=100), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("website", sa.String(length=500), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_universities_tenant_id", "universities", ["tenant_id"], unique=False)

    op.create_table(
        "programs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("university_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("level", sa.String(length=60), nullable=False),
        sa.Column("discipline", sa.String(length=120), nullable=False),
        sa.Column("tuition_amount", sa.Integer(), nullable=True),
        sa.Column("tuition_currency", sa.String(length=3), nullable=True),
        sa.Column("duration_months", sa.Integer(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["university_id"], ["universities.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_programs_active", "programs", ["active"], unique=False)
    op.create_index("ix_programs_tenant_id", "programs", ["tenant_id"], unique=False)
    op.create_index("ix_programs_name", "programs", ["name"], unique=False)

    op.create_table(
        "intakes",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("program_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("term", sa.String(length=60), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("app_deadline", sa.Date(), nullable=False),
        sa.ForeignKeyConstraint(["program_id"], ["programs.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_intakes_program_id", "intakes", ["program_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_intakes_program_id", table_name="intakes")
    op.drop_table("intakes")
    op.drop_index("ix_programs_name", table_name="programs")
    op.drop_index("ix_programs_tenant_id", table_name="programs")
    op.drop_index("ix_programs_active", table_name="programs")
    op.drop_table("programs")
    op.drop_index("ix_universities_tenant_id", table_name="universities")
    op.drop_table("universities")

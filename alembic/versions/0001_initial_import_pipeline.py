"""initial import pipeline schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "cruise_line",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("name_en", sa.Text(), nullable=True),
        sa.Column("aliases", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("status", sa.Text(), nullable=False, server_default="ACTIVE"),
        _created_at(),
    )
    op.create_table(
        "ship",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("cruise_line_id", sa.Integer(), sa.ForeignKey("cruise_line.id"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("aliases", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("status", sa.Text(), nullable=False, server_default="ACTIVE"),
        _created_at(),
    )
    op.create_table(
        "cabin_category",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("name_en", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_table(
        "cabin_type",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ship_id", sa.Integer(), sa.ForeignKey("ship.id"), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("cabin_category.id"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("code", sa.Text(), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_cabin_type_ship_id", "cabin_type", ["ship_id"])
    op.create_table(
        "sailing",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ship_id", sa.Integer(), sa.ForeignKey("ship.id"), nullable=False),
        sa.Column("sailing_code", sa.Text(), nullable=False, unique=True),
        sa.Column("departure_date", sa.Date(), nullable=False),
        sa.Column("return_date", sa.Date(), nullable=False),
        sa.Column("nights", sa.Integer(), nullable=False),
        sa.Column("route", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.Text(), nullable=False, server_default="ACTIVE"),
        _created_at(),
    )
    op.create_index("ix_sailing_ship_id", "sailing", ["ship_id"])
    op.create_table(
        "supplier",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("aliases", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("visibility", sa.Text(), nullable=False, server_default="PRIVATE"),
        sa.Column("status", sa.Text(), nullable=False, server_default="ACTIVE"),
        _created_at(),
    )

    op.create_table(
        "import_job",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="PENDING"),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("file_hash", sa.Text(), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("file_path", sa.Text(), nullable=True),
        sa.Column("raw_text", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.Text(), nullable=True),
        sa.Column("model_version", sa.Text(), nullable=True),
        sa.Column("prompt_version", sa.Text(), nullable=True),
        sa.Column("result_summary", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("supplier.id"), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("idempotency_key", name="uq_import_job_idempotency_key"),
    )
    op.create_index("ix_import_job_status_created_at", "import_job", ["status", "created_at"])

    op.create_table(
        "price_quote",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("sailing_id", sa.Integer(), sa.ForeignKey("sailing.id"), nullable=False),
        sa.Column("cabin_type_id", sa.Integer(), sa.ForeignKey("cabin_type.id"), nullable=False),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("supplier.id"), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False, server_default="CNY"),
        sa.Column("pricing_unit", sa.Text(), nullable=False),
        sa.Column("guest_count", sa.Integer(), nullable=True),
        sa.Column("cabin_quantity", sa.Integer(), nullable=True),
        sa.Column("valid_until", sa.Date(), nullable=True),
        sa.Column("conditions", sa.Text(), nullable=True),
        sa.Column("promotion", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("source_ref", sa.Text(), nullable=True),
        sa.Column("import_job_id", sa.Integer(), sa.ForeignKey("import_job.id"), nullable=True),
        sa.Column("corrects_quote_id", sa.Integer(), sa.ForeignKey("price_quote.id"), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="ACTIVE"),
        sa.Column("created_by", sa.Integer(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_price_quote_sailing_cabin", "price_quote", ["sailing_id", "cabin_type_id"])
    op.create_index("ix_price_quote_import_job_id", "price_quote", ["import_job_id"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("supplier_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("old_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("new_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
    )
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_log_entity", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_index("ix_price_quote_import_job_id", table_name="price_quote")
    op.drop_index("ix_price_quote_sailing_cabin", table_name="price_quote")
    op.drop_table("price_quote")
    op.drop_index("ix_import_job_status_created_at", table_name="import_job")
    op.drop_table("import_job")
    op.drop_table("supplier")
    op.drop_index("ix_sailing_ship_id", table_name="sailing")
    op.drop_table("sailing")
    op.drop_index("ix_cabin_type_ship_id", table_name="cabin_type")
    op.drop_table("cabin_type")
    op.drop_table("cabin_category")
    op.drop_table("ship")
    op.drop_table("cruise_line")

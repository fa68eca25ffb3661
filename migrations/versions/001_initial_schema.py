"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Jobs table
    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("kind", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("params_json", sa.Text(), default="{}"),
        sa.Column("totals_json", sa.Text(), default="{}"),
        sa.Column("error_text", sa.Text(), default=""),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_jobs_kind", "jobs", ["kind"])
    op.create_index("ix_jobs_status", "jobs", ["status"])
    op.create_index("ix_jobs_created_at", "jobs", ["created_at"])

    # Job items table
    op.create_table(
        "job_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=False),
        sa.Column("supplier_product_id", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), default="success"),
        sa.Column("name", sa.Text(), default=""),
        sa.Column("category", sa.String(200), default=""),
        sa.Column("stock_sum", sa.Integer(), default=0),
        sa.Column("min_retail_local", sa.Numeric(12, 2), nullable=True),
        sa.Column("min_cost_foreign", sa.Numeric(12, 4), nullable=True),
        sa.Column("variant_count", sa.Integer(), default=0),
        sa.Column("priced_variant_count", sa.Integer(), default=0),
        sa.Column("variants_json", sa.Text(), default="[]"),
        sa.Column("raw_json", sa.Text(), default=""),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("job_id", "supplier_product_id", name="uq_job_item_product"),
    )
    op.create_index("ix_job_items_job_id", "job_items", ["job_id"])
    op.create_index("ix_job_items_supplier_product_id", "job_items", ["supplier_product_id"])

    # Pricing rules table
    op.create_table(
        "pricing_rules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("scope", sa.String(20), nullable=False),
        sa.Column("category", sa.String(200), nullable=True),
        sa.Column("margin_percent", sa.Numeric(8, 4), default=40),
        sa.Column("min_profit", sa.Numeric(10, 2), default=35),
        sa.Column("vat_percent", sa.Numeric(8, 4), default=15),
        sa.Column("payment_fee_percent", sa.Numeric(8, 4), default=2.9),
        sa.Column("smart_rounding_enabled", sa.Boolean(), default=True),
        sa.Column("rounding_targets_json", sa.Text(), default="[]"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("category"),
    )
    op.create_index("ix_pricing_rules_scope", "pricing_rules", ["scope"])

    # API logs table
    op.create_table(
        "api_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("api_name", sa.String(50), nullable=False),
        sa.Column("endpoint", sa.String(200), default=""),
        sa.Column("method", sa.String(10), default="GET"),
        sa.Column("request_params", sa.Text(), default=""),
        sa.Column("response_status", sa.Integer(), default=0),
        sa.Column("response_size_bytes", sa.Integer(), default=0),
        sa.Column("duration_ms", sa.Integer(), default=0),
        sa.Column("error_message", sa.Text(), default=""),
        sa.Column("success", sa.Boolean(), default=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_api_logs_api_name", "api_logs", ["api_name"])
    op.create_index("ix_api_logs_created_at", "api_logs", ["created_at"])
    op.create_index("ix_api_logs_api_time", "api_logs", ["api_name", "created_at"])


def downgrade() -> None:
    op.drop_table("api_logs")
    op.drop_table("pricing_rules")
    op.drop_table("job_items")
    op.drop_table("jobs")

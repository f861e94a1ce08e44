"""Initialize schema with companies, users, invitations, api_settings, products,
product_variants, work_orders and price_history

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial tables."""
    # companies
    op.create_table(
        "companies",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("subscription_plan", sa.String(20), server_default="trial"),
        sa.Column("product_limit", sa.Integer(), server_default="5"),
        sa.Column("stripe_customer_id", sa.String(255)),
        sa.Column("stripe_subscription_id", sa.String(255)),
        sa.Column("subscription_status", sa.String(50), server_default="active"),
        sa.Column("current_period_end", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()")),
    )

    # users
    op.create_table(
        "users",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column(
            "company_id",
            sa.String(36),
            sa.ForeignKey("companies.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("email", sa.String(255), unique=True),
        sa.Column("first_name", sa.String(255)),
        sa.Column("last_name", sa.String(255)),
        sa.Column("profile_image_url", sa.Text()),
        sa.Column("role", sa.String(20), server_default="member"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()")),
    )

    # company_invitations
    op.create_table(
        "company_invitations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "company_id",
            sa.String(36),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), server_default="member"),
        sa.Column("invited_by", sa.String(128), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("token", sa.String(64), unique=True, nullable=False, index=True),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
    )

    # api_settings
    op.create_table(
        "api_settings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "company_id",
            sa.String(36),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
            index=True,
        ),
        sa.Column("store_hash", sa.String(50), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("client_id", sa.String(255), nullable=False),
        sa.Column("show_stock", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("show_stock_status", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
    )

    # products
    op.create_table(
        "products",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "company_id",
            sa.String(36),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            primary_key=True,
            index=True,
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("sku", sa.String(255), index=True),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.Text(), index=True),
        sa.Column("regular_price", sa.Numeric(10, 2)),
        sa.Column("sale_price", sa.Numeric(10, 2)),
        sa.Column("stock", sa.Integer(), server_default="0"),
        sa.Column("weight", sa.Numeric(10, 2)),
        sa.Column("status", sa.String(20), server_default="published"),
        sa.Column("last_updated", sa.DateTime(), server_default=sa.text("now()")),
    )

    # product_variants
    op.create_table(
        "product_variants",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "company_id",
            sa.String(36),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            primary_key=True,
            index=True,
        ),
        sa.Column("product_id", sa.String(32), nullable=False, index=True),
        sa.Column("variant_sku", sa.String(255)),
        sa.Column("option_values", postgresql.JSONB(), server_default="{}"),
        sa.Column("regular_price", sa.Numeric(10, 2)),
        sa.Column("sale_price", sa.Numeric(10, 2)),
        sa.Column("calculated_price", sa.Numeric(10, 2)),
        sa.Column("stock", sa.Integer(), server_default="0"),
        sa.Column("last_updated", sa.DateTime(), server_default=sa.text("now()")),
    )

    # work_orders
    op.create_table(
        "work_orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "company_id",
            sa.String(36),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("created_by", sa.String(128), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("product_updates", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("original_prices", postgresql.JSONB(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("execute_immediately", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("status", sa.String(20), server_default="pending", index=True),
        sa.Column("archived", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("error", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("executed_at", sa.DateTime(), nullable=True),
        sa.Column("undone_at", sa.DateTime(), nullable=True),
    )

    # price_history
    op.create_table(
        "price_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "company_id",
            sa.String(36),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("product_id", sa.String(32), nullable=False, index=True),
        sa.Column("variant_id", sa.String(32), nullable=True),
        sa.Column("old_regular_price", sa.Numeric(10, 2)),
        sa.Column("new_regular_price", sa.Numeric(10, 2)),
        sa.Column("old_sale_price", sa.Numeric(10, 2)),
        sa.Column("new_sale_price", sa.Numeric(10, 2)),
        sa.Column("change_type", sa.String(20), nullable=False),
        sa.Column(
            "work_order_id",
            sa.String(36),
            sa.ForeignKey("work_orders.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("changed_by", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("price_history")
    op.drop_table("work_orders")
    op.drop_table("product_variants")
    op.drop_table("products")
    op.drop_table("api_settings")
    op.drop_table("company_invitations")
    op.drop_table("users")
    op.drop_table("companies")

"""initial schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-09-14 00:00:00.000000
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

from alembic import op

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(128), primary_key=True),
        sa.Column("display_name", sa.String(256), nullable=False),
        sa.Column("country_code", sa.String(2), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )

    op.create_table(
        "listings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("seller_id", sa.String(128), nullable=False),
        # One listing per completed payment
        sa.Column("payment_id", sa.String(128), nullable=False, unique=True),
        # Content
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price_amount", sa.Numeric(18, 7), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("make", sa.String(128), nullable=True),
        sa.Column("model", sa.String(128), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("mileage", sa.Integer(), nullable=True),
        sa.Column("country_code", sa.String(2), nullable=False),
        sa.Column("region_code", sa.String(128), nullable=False),
        sa.Column("contact_phone", sa.String(64), nullable=False),
        sa.Column("images", JSONB, nullable=False, server_default=sa.text("'[]'")),
        # State
        sa.Column("payment_state", sa.String(16), nullable=False),
        sa.Column("visibility", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_listings_seller_id", "listings", ["seller_id"])
    op.create_index("ix_listings_visibility_expires_at", "listings", ["visibility", "expires_at"])
    op.create_index(
        "ix_listings_visibility_country_category_created_at",
        "listings",
        ["visibility", "country_code", "category", "created_at"],
    )

    op.create_table(
        "payment_intents",
        sa.Column("payment_id", sa.String(128), primary_key=True),
        sa.Column("payer_id", sa.String(128), nullable=False),
        sa.Column("amount", sa.Numeric(18, 7), nullable=False),
        sa.Column("memo", sa.String(256), nullable=False, server_default=""),
        sa.Column("metadata", JSONB, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("draft", JSONB, nullable=True),
        sa.Column("state", sa.String(16), nullable=False),
        sa.Column("listing_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_payment_intents_state_updated_at", "payment_intents", ["state", "updated_at"]
    )

    # Payments taken without a stored listing, awaiting repair
    op.create_table(
        "reconciliation_incidents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("payment_id", sa.String(128), nullable=False),
        sa.Column("payer_id", sa.String(128), nullable=False),
        sa.Column("receipt", sa.String(256), nullable=False),
        sa.Column("draft", JSONB, nullable=False),
        sa.Column("error", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("listing_id", UUID(as_uuid=True), nullable=True),
    )
    op.create_index(
        "ix_reconciliation_incidents_payment_id", "reconciliation_incidents", ["payment_id"]
    )


def downgrade() -> None:
    op.drop_table("reconciliation_incidents")
    op.drop_table("payment_intents")
    op.drop_table("listings")
    op.drop_table("users")

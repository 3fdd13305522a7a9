"""initial

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=200), nullable=True),
        sa.Column("owner_user_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug", name="uq_organizations_slug"),
    )

    op.create_table(
        "locations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("org_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], name="fk_locations_org_id"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_locations_org_id", "locations", ["org_id"])

    op.create_table(
        "server_assignments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("org_id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.Uuid(), nullable=True),
        sa.Column("server_id", sa.Uuid(), nullable=False),
        sa.Column("display_name_override", sa.String(length=200), nullable=True),
        sa.Column("payout_wallet_address", sa.String(length=64), nullable=True),
        sa.Column("stripe_connect_id", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["org_id"], ["organizations.id"], name="fk_server_assignments_org_id"
        ),
        sa.ForeignKeyConstraint(
            ["location_id"], ["locations.id"], name="fk_server_assignments_location_id"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_server_assignments_org_id", "server_assignments", ["org_id"])
    op.create_index("ix_server_assignments_server_id", "server_assignments", ["server_id"])

    op.create_table(
        "qr_codes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("short_code", sa.String(length=16), nullable=True),
        sa.Column("server_assignment_id", sa.Uuid(), nullable=False),
        sa.Column("table_label", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["server_assignment_id"],
            ["server_assignments.id"],
            name="fk_qr_codes_server_assignment_id",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_qr_codes_code"),
    )
    op.create_index("ix_qr_codes_server_assignment_id", "qr_codes", ["server_assignment_id"])

    op.create_table(
        "tips",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("org_id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.Uuid(), nullable=True),
        sa.Column("server_id", sa.Uuid(), nullable=False),
        sa.Column("server_assignment_id", sa.Uuid(), nullable=False),
        sa.Column("source", sa.String(length=16), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("stripe_payment_intent_id", sa.String(length=128), nullable=True),
        sa.Column("blockchain_network", sa.String(length=64), nullable=True),
        sa.Column("chain_id", sa.Integer(), nullable=True),
        sa.Column("tx_hash", sa.String(length=128), nullable=True),
        sa.Column("from_wallet_address", sa.String(length=64), nullable=True),
        sa.Column("to_wallet_address", sa.String(length=64), nullable=True),
        sa.Column("token_symbol", sa.String(length=16), nullable=True),
        sa.Column("amount_native_units", sa.String(length=80), nullable=True),
        sa.Column("block_number", sa.BigInteger(), nullable=True),
        sa.Column("gas_paid_cents", sa.BigInteger(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("source in ('stripe', 'cash', 'crypto')", name="ck_tips_source"),
        sa.CheckConstraint(
            "status in ('pending', 'succeeded', 'failed', 'refunded')",
            name="ck_tips_status",
        ),
        sa.CheckConstraint("amount_cents >= 0", name="ck_tips_amount_cents_non_negative"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], name="fk_tips_org_id"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], name="fk_tips_location_id"),
        sa.ForeignKeyConstraint(
            ["server_assignment_id"],
            ["server_assignments.id"],
            name="fk_tips_server_assignment_id",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tx_hash", name="uq_tips_tx_hash"),
        sa.UniqueConstraint("stripe_payment_intent_id", name="uq_tips_stripe_payment_intent_id"),
    )
    op.create_index("ix_tips_server_assignment_id", "tips", ["server_assignment_id"])
    op.create_index("ix_tips_org_id", "tips", ["org_id"])

    op.create_table(
        "reviews",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("org_id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.Uuid(), nullable=True),
        sa.Column("server_id", sa.Uuid(), nullable=False),
        sa.Column("server_assignment_id", sa.Uuid(), nullable=False),
        sa.Column("sentiment", sa.String(length=16), nullable=False),
        sa.Column("rating_emoji", sa.String(length=16), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False),
        sa.Column("contact_email", sa.String(length=320), nullable=True),
        sa.Column("linked_tip_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "sentiment in ('positive', 'neutral', 'negative')",
            name="ck_reviews_sentiment",
        ),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], name="fk_reviews_org_id"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], name="fk_reviews_location_id"),
        sa.ForeignKeyConstraint(
            ["server_assignment_id"],
            ["server_assignments.id"],
            name="fk_reviews_server_assignment_id",
        ),
        sa.ForeignKeyConstraint(["linked_tip_id"], ["tips.id"], name="fk_reviews_linked_tip_id"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_reviews_location_id_created_at", "reviews", ["location_id", "created_at"]
    )
    op.create_index("ix_reviews_server_assignment_id", "reviews", ["server_assignment_id"])


def downgrade() -> None:
    op.drop_index("ix_reviews_server_assignment_id", table_name="reviews")
    op.drop_index("ix_reviews_location_id_created_at", table_name="reviews")
    op.drop_table("reviews")
    op.drop_index("ix_tips_org_id", table_name="tips")
    op.drop_index("ix_tips_server_assignment_id", table_name="tips")
    op.drop_table("tips")
    op.drop_index("ix_qr_codes_server_assignment_id", table_name="qr_codes")
    op.drop_table("qr_codes")
    op.drop_index("ix_server_assignments_server_id", table_name="server_assignments")
    op.drop_index("ix_server_assignments_org_id", table_name="server_assignments")
    op.drop_table("server_assignments")
    op.drop_index("ix_locations_org_id", table_name="locations")
    op.drop_table("locations")
    op.drop_table("organizations")

"""create bout offer workflow tables

Revision ID: 5c1d2e7a9b30
Revises:
Create Date: 2026-10-17 10:12:41.118203
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c1d2e7a9b30"
down_revision = None
branch_labels = None
depends_on = None

OPEN_OFFER = sa.text("status IN ('pending', 'accepted')")


def upgrade() -> None:
    # --- profiles ---
    op.create_table(
        "profiles",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("firebase_uid", sa.String(), nullable=True, unique=True, index=True),
        sa.Column("username", sa.String(), nullable=False, unique=True, index=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=True, index=True),
        sa.Column("social_links", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, index=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    # --- events + followers ---
    op.create_table(
        "events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("martial_art", sa.String(), nullable=True),
        sa.Column(
            "owner_profile_id",
            sa.BigInteger(),
            sa.ForeignKey("profiles.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("profile_id", sa.BigInteger(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, index=True),
    )
    op.create_table(
        "event_follows",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("profile_id", sa.BigInteger(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("event_id", "profile_id", name="uq_event_follow"),
    )

    # --- bouts ---
    op.create_table(
        "event_bouts",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("card_type", sa.String(), nullable=True, server_default="undercard"),
        sa.Column("order_index", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("weight", sa.String(), nullable=True),
        sa.Column("bout_details", sa.String(), nullable=True),
        sa.Column("red_fighter_id", sa.BigInteger(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("red_name", sa.String(), nullable=True),
        sa.Column("red_looking_for_opponent", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("blue_fighter_id", sa.BigInteger(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("blue_name", sa.String(), nullable=True),
        sa.Column("blue_looking_for_opponent", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("offer_fee", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    )

    # --- offers ---
    op.create_table(
        "event_bout_offers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("bout_id", sa.BigInteger(), sa.ForeignKey("event_bouts.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("side", sa.String(), nullable=False),
        sa.Column("from_profile_id", sa.BigInteger(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column(
            "fighter_profile_id",
            sa.BigInteger(),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), nullable=True, index=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "uq_bout_offers_open",
        "event_bout_offers",
        ["bout_id", "side", "fighter_profile_id"],
        unique=True,
        postgresql_where=OPEN_OFFER,
        sqlite_where=OPEN_OFFER,
    )
    op.create_index("ix_bout_offers_bout_status", "event_bout_offers", ["bout_id", "status"])

    # --- offer payments ---
    op.create_table(
        "offer_payments",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "offer_id",
            sa.BigInteger(),
            sa.ForeignKey("event_bout_offers.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("bout_id", sa.BigInteger(), sa.ForeignKey("event_bouts.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("payer_profile_id", sa.BigInteger(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("amount_paid", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False, server_default="usd"),
        sa.Column("payment_status", sa.String(), nullable=False, server_default="paid"),
        sa.Column("payment_intent_id", sa.String(), nullable=True),
        sa.Column("checkout_session_id", sa.String(), nullable=True, unique=True),
        sa.Column("refund_status", sa.String(), nullable=False, server_default="none"),
        sa.Column("refund_id", sa.String(), nullable=True),
        sa.Column("platform_fee", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transfer_status", sa.String(), nullable=False, server_default="none"),
        sa.Column("transfer_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, index=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_offer_payments_settlement", "offer_payments", ["refund_status", "transfer_status"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("type", sa.String(), nullable=False, index=True),
        sa.Column(
            "recipient_profile_id",
            sa.BigInteger(),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("actor_profile_id", sa.BigInteger(), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(), nullable=True, index=True),
    )
    op.create_index("ix_notifications_recipient_time", "notifications", ["recipient_profile_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_notifications_recipient_time", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_offer_payments_settlement", table_name="offer_payments")
    op.drop_table("offer_payments")
    op.drop_index("ix_bout_offers_bout_status", table_name="event_bout_offers")
    op.drop_index("uq_bout_offers_open", table_name="event_bout_offers")
    op.drop_table("event_bout_offers")
    op.drop_table("event_bouts")
    op.drop_table("event_follows")
    op.drop_table("events")
    op.drop_table("profiles")

"""Create referral core schema.

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18

Creates members, network positions, commissions, payment intents and
payout batches. Money columns hold integer minor units.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create referral core tables."""
    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        # Referral
        sa.Column("sponsor_id", sa.Integer(), nullable=True),
        # Placement, no FK (network_positions references members)
        sa.Column("network_position_id", sa.Integer(), nullable=True),
        # Qualification
        sa.Column("direct_referral_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unlocked_structure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_structure_count", sa.Integer(), nullable=False, server_default="0"),
        # Subscription
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscription_paid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payout_destination", sa.String(length=255), nullable=True),
        # Timestamps
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["sponsor_id"], ["members.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("network_position_id"),
        sa.CheckConstraint(
            "unlocked_structure_count >= 0 AND unlocked_structure_count <= 6",
            name="check_member_unlocked_structures_range",
        ),
        sa.CheckConstraint(
            "completed_structure_count >= 0 AND completed_structure_count <= 6",
            name="check_member_completed_structures_range",
        ),
        sa.CheckConstraint(
            "direct_referral_count >= 0",
            name="check_member_direct_referrals_non_negative",
        ),
    )
    op.create_index("ix_members_sponsor_id", "members", ["sponsor_id"])
    op.create_index("ix_members_is_active", "members", ["is_active"])

    op.create_table(
        "network_positions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        # Sponsor whose downline received the member, null for roots
        sa.Column("sponsor_member_id", sa.Integer(), nullable=True),
        sa.Column("structure_number", sa.Integer(), nullable=True),
        # Null for roots
        sa.Column("parent_position_id", sa.Integer(), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("slot_index", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["sponsor_member_id"], ["members.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(
            ["parent_position_id"], ["network_positions.id"], ondelete="RESTRICT"
        ),
        # One position per member, each slot claimed once
        sa.UniqueConstraint("member_id"),
        sa.UniqueConstraint(
            "parent_position_id", "slot_index", name="uq_network_position_parent_slot"
        ),
        sa.CheckConstraint(
            "(parent_position_id IS NULL AND level = 0 AND slot_index IS NULL) "
            "OR (parent_position_id IS NOT NULL AND level > 0 AND slot_index IS NOT NULL)",
            name="check_network_position_root_shape",
        ),
        sa.CheckConstraint(
            "slot_index IS NULL OR (slot_index >= 0 AND slot_index <= 2)",
            name="check_network_position_slot_range",
        ),
        sa.CheckConstraint(
            "structure_number IS NULL OR (structure_number >= 1 AND structure_number <= 6)",
            name="check_network_position_structure_range",
        ),
    )
    op.create_index(
        "ix_network_positions_sponsor_member_id", "network_positions", ["sponsor_member_id"]
    )
    op.create_index(
        "ix_network_positions_parent_position_id", "network_positions", ["parent_position_id"]
    )

    op.create_table(
        "commissions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("referrer_id", sa.Integer(), nullable=False),
        sa.Column("referred_id", sa.Integer(), nullable=True),
        sa.Column("commission_type", sa.String(length=20), nullable=False),
        sa.Column("period", sa.String(length=7), nullable=False),
        sa.Column("dedupe_key", sa.String(length=64), nullable=False),
        # Amount in minor units
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="USDC"),
        sa.Column("breakdown", sa.JSON(), nullable=True),
        # Settlement
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("payout_destination", sa.String(length=255), nullable=True),
        sa.Column("external_transaction_ref", sa.String(length=255), nullable=True),
        sa.Column("transfer_key", sa.String(length=100), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "needs_reconciliation", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        # Manual completion audit
        sa.Column("manual_note", sa.Text(), nullable=True),
        sa.Column("completed_by", sa.String(length=255), nullable=True),
        # Timestamps
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["referrer_id"], ["members.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["referred_id"], ["members.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint(
            "referrer_id", "dedupe_key", name="uq_commission_referrer_dedupe_key"
        ),
        sa.CheckConstraint("amount > 0", name="check_commission_amount_positive"),
        sa.CheckConstraint("retry_count >= 0", name="check_commission_retry_non_negative"),
        sa.CheckConstraint(
            "commission_type != 'direct_bonus' OR referred_id IS NOT NULL",
            name="check_commission_bonus_has_referred",
        ),
    )
    op.create_index("ix_commissions_referrer_id", "commissions", ["referrer_id"])
    op.create_index("ix_commissions_status", "commissions", ["status"])
    op.create_index(
        "ix_commissions_needs_reconciliation", "commissions", ["needs_reconciliation"]
    )
    op.create_index("idx_commission_status_period", "commissions", ["status", "period"])
    op.create_index("idx_commission_type", "commissions", ["commission_type"])

    op.create_table(
        "payment_intents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("intent_type", sa.String(length=30), nullable=False),
        sa.Column("expected_amount", sa.BigInteger(), nullable=False),
        sa.Column("received_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("overpaid_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("deposit_address", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("is_late", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("swept_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
        sa.CheckConstraint("expected_amount > 0", name="check_intent_expected_positive"),
        sa.CheckConstraint("received_amount >= 0", name="check_intent_received_non_negative"),
        sa.CheckConstraint(
            "status != 'completed' OR received_amount >= expected_amount",
            name="check_intent_completed_fully_paid",
        ),
    )
    op.create_index("ix_payment_intents_member_id", "payment_intents", ["member_id"])
    op.create_index("ix_payment_intents_deposit_address", "payment_intents", ["deposit_address"])
    op.create_index("ix_payment_intents_status", "payment_intents", ["status"])
    op.create_index(
        "idx_payment_intent_status_expires", "payment_intents", ["status", "expires_at"]
    )

    op.create_table(
        "payout_batches",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("period", sa.String(length=7), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="running"),
        sa.Column("triggered_by", sa.String(length=255), nullable=True),
        sa.Column("total_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("succeeded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("available_balance", sa.BigInteger(), nullable=True),
        sa.Column("required_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("balance_warning", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payout_batches_period", "payout_batches", ["period"])


def downgrade() -> None:
    """Drop referral core tables."""
    op.drop_table("payout_batches")
    op.drop_table("payment_intents")
    op.drop_table("commissions")
    op.drop_table("network_positions")
    op.drop_table("members")

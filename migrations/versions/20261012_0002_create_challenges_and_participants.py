from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261012_0002"
down_revision = "20261012_0001"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "challenges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("stake_amount", sa.Numeric(20, 6), nullable=False),
        sa.Column("total_prize_pool", sa.Numeric(20, 6), nullable=False, server_default="0"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("escrow_address", sa.String(length=64), nullable=True),
        sa.Column("onchain_address", sa.String(length=64), nullable=True),
        sa.Column("completion_threshold_bps", sa.Integer(), nullable=False, server_default="8000"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("end_date >= start_date", name="ck_challenge_dates"),
        sa.CheckConstraint("completion_threshold_bps BETWEEN 0 AND 10000", name="ck_challenge_threshold_bps"),
    )
    op.create_index("ix_challenges_owner_id", "challenges", ["owner_id"])

    op.create_table(
        "participants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("stake_amount", sa.Numeric(20, 6), nullable=False),
        sa.Column("wallet_address", sa.String(length=64), nullable=False),
        sa.Column("transaction_signature", sa.String(length=128), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="ACTIVE"),
        sa.Column("joined_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("challenge_id", "user_id", name="uq_participant_unique"),
        sa.UniqueConstraint("transaction_signature", name="participants_transaction_signature_key"),
        sa.CheckConstraint("progress BETWEEN 0 AND 100", name="ck_participant_progress"),
    )
    op.create_index("ix_participants_challenge_id", "participants", ["challenge_id"])
    op.create_index("ix_participants_user_id", "participants", ["user_id"])

def downgrade() -> None:
    op.drop_index("ix_participants_user_id", table_name="participants")
    op.drop_index("ix_participants_challenge_id", table_name="participants")
    op.drop_table("participants")
    op.drop_index("ix_challenges_owner_id", table_name="challenges")
    op.drop_table("challenges")

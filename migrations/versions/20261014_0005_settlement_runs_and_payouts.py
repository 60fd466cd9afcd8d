from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261014_0005"
down_revision = "20261013_0004"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "settlement_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("state", sa.String(length=32), nullable=False, server_default="CLOSED_PENDING_SETTLEMENT"),
        sa.Column("closed_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("planned_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("settled_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("evaluation_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("result_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.UniqueConstraint("challenge_id", name="settlement_runs_challenge_id_key"),
    )

    op.create_table(
        "payouts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("run_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("settlement_runs.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("participant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("participants.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("wallet_address", sa.String(length=64), nullable=False),
        sa.Column("stake_amount", sa.BigInteger(), nullable=False),
        sa.Column("bonus_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("transaction_signature", sa.String(length=128), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("run_id", "participant_id", name="uq_payout_once_per_run"),
        sa.CheckConstraint("total_amount = stake_amount + bonus_amount", name="ck_payout_total"),
        sa.CheckConstraint("status IN ('PENDING','ISSUING','SENT','FAILED','UNCONFIRMED')", name="ck_payout_status"),
    )
    op.create_index("ix_payouts_run_id", "payouts", ["run_id"])
    op.create_index("ix_payouts_participant_id", "payouts", ["participant_id"])

def downgrade() -> None:
    op.drop_index("ix_payouts_participant_id", table_name="payouts")
    op.drop_index("ix_payouts_run_id", table_name="payouts")
    op.drop_table("payouts")
    op.drop_table("settlement_runs")

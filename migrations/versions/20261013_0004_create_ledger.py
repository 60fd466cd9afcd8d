from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261013_0004"
down_revision = "20261012_0003"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "ledger",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="RESTRICT"), nullable=False),
        # no FK: platform rows use the all-zero pseudo-participant
        sa.Column("participant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("ref", sa.String(length=128), nullable=False),
        sa.Column("transaction_signature", sa.String(length=128), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "(type = 'STAKE' AND amount < 0) OR (type = 'PAYOUT' AND amount > 0) OR (type = 'FORFEIT' AND amount = 0)"
            " OR (type = 'RETAINED' AND amount > 0) OR (type = 'BONUS' AND amount < 0)",
            name="ck_ledger_sign_by_type",
        ),
    )
    op.create_index("ix_ledger_challenge_id", "ledger", ["challenge_id"])
    op.create_index("ix_ledger_participant_id", "ledger", ["participant_id"])
    op.create_unique_constraint("uq_ledger_unique_ref", "ledger", ["participant_id", "type", "ref"])

def downgrade() -> None:
    op.drop_constraint("uq_ledger_unique_ref", "ledger", type_="unique")
    op.drop_index("ix_ledger_participant_id", table_name="ledger")
    op.drop_index("ix_ledger_challenge_id", table_name="ledger")
    op.drop_table("ledger")

from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261012_0003"
down_revision = "20261012_0002"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("challenge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("participant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("participants.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("submission_date", sa.Date(), nullable=False),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("image_ref", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("review_status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("review_comments", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.UniqueConstraint("participant_id", "submission_date", name="uq_submission_one_per_day"),
        sa.CheckConstraint("review_status IN ('PENDING','APPROVED','REJECTED')", name="ck_submission_review_status"),
    )
    op.create_index("ix_submissions_challenge_id", "submissions", ["challenge_id"])
    op.create_index("ix_submissions_participant_id", "submissions", ["participant_id"])
    # review queue
    op.create_index(
        "ix_submissions_pending", "submissions", ["submission_date"],
        postgresql_where=sa.text("review_status = 'PENDING'"),
    )

def downgrade() -> None:
    op.drop_index("ix_submissions_pending", table_name="submissions")
    op.drop_index("ix_submissions_participant_id", table_name="submissions")
    op.drop_index("ix_submissions_challenge_id", table_name="submissions")
    op.drop_table("submissions")

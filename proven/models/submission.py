from __future__ import annotations
import uuid
from datetime import date, datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Date, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Uuid, func
from proven.db import Base


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    challenge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("participants.id", ondelete="RESTRICT"), index=True, nullable=False
    )

    submission_date: Mapped[date] = mapped_column(Date, nullable=False)  # calendar day covered, tz-naive
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    image_ref: Mapped[str] = mapped_column(Text(), nullable=False)  # opaque storage pointer
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)

    review_status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")  # PENDING|APPROVED|REJECTED
    review_comments: Mapped[str | None] = mapped_column(Text(), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        UniqueConstraint("participant_id", "submission_date", name="uq_submission_one_per_day"),
        CheckConstraint("review_status IN ('PENDING','APPROVED','REJECTED')", name="ck_submission_review_status"),
    )

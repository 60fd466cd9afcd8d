from __future__ import annotations
import uuid
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Date, DateTime, Numeric, Text, ForeignKey, UniqueConstraint, CheckConstraint, Uuid, func
from proven.db import Base

class Challenge(Base):
    __tablename__ = "challenges"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text())
    stake_amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    total_prize_pool: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False, default=Decimal("0"))  # externally funded bonus
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    escrow_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    onchain_address: Mapped[str | None] = mapped_column(String(64), nullable=True)  # program account, if mirrored on-chain
    completion_threshold_bps: Mapped[int] = mapped_column(Integer, nullable=False, default=8000)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_challenge_dates"),
        CheckConstraint("completion_threshold_bps BETWEEN 0 AND 10000", name="ck_challenge_threshold_bps"),
    )

class Participant(Base):
    """A user's staked seat in a challenge (UserChallenge). Never deleted, only marked COMPLETED/FAILED."""
    __tablename__ = "participants"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="RESTRICT"), index=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), index=True, nullable=False)
    stake_amount: Mapped[Decimal] = mapped_column(Numeric(20, 6), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_signature: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0..100
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")  # ACTIVE|COMPLETED|FAILED
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_participant_unique"),
        CheckConstraint("progress BETWEEN 0 AND 100", name="ck_participant_progress"),
    )

from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, BigInteger, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Uuid, func
from proven.db import Base, JSONType


class SettlementRun(Base):
    """
    One run per challenge. Its id scopes payout idempotency: a payout row is unique per
    (run_id, participant_id), so resuming or re-running never issues a second transfer.
    """
    __tablename__ = "settlement_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="RESTRICT"), unique=True, nullable=False
    )
    state: Mapped[str] = mapped_column(String(32), nullable=False, default="CLOSED_PENDING_SETTLEMENT")  # CLOSED_PENDING_SETTLEMENT|SETTLED
    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    planned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    evaluation_json: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    result_json: Mapped[dict | None] = mapped_column(JSONType, nullable=True)


class Payout(Base):
    __tablename__ = "payouts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("settlement_runs.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("participants.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)

    # token base units
    stake_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bonus_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")  # PENDING|ISSUING|SENT|FAILED|UNCONFIRMED
    transaction_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error: Mapped[str | None] = mapped_column(Text(), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("run_id", "participant_id", name="uq_payout_once_per_run"),
        CheckConstraint("total_amount = stake_amount + bonus_amount", name="ck_payout_total"),
        CheckConstraint("status IN ('PENDING','ISSUING','SENT','FAILED','UNCONFIRMED')", name="ck_payout_status"),
    )

from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, BigInteger, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Uuid, func
from proven.db import Base

class Ledger(Base):
    """
    Event-sourced money movements per participant, in token base units.
    Sign convention:
      - STAKE    => negative (user wallet into escrow, written on join)
      - PAYOUT   => positive (escrow back to user, written once the transfer confirms)
      - FORFEIT  => zero (marks a loser stake left in the pool)
      - RETAINED => positive (pool kept by the platform when nobody won or policy=retain)
      - BONUS    => negative (externally funded prize pool, booked at settlement on the platform row)

    Escrow pool = Σ(-amount) per challenge. Once every payout is sent, Σ(amount) per challenge = 0.
    """
    __tablename__ = "ledger"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    challenge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("challenges.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    # No FK: RETAINED rows use the platform pseudo-participant
    participant_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)

    type: Mapped[str] = mapped_column(String(20), nullable=False)  # STAKE | PAYOUT | FORFEIT | RETAINED | BONUS
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Idempotency key within (participant, type): stake tx signature, payout id or settlement run id
    ref: Mapped[str] = mapped_column(String(128), nullable=False)
    transaction_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("participant_id", "type", "ref", name="uq_ledger_unique_ref"),
        CheckConstraint(
            "(type = 'STAKE' AND amount < 0) OR (type = 'PAYOUT' AND amount > 0) OR (type = 'FORFEIT' AND amount = 0)"
            " OR (type = 'RETAINED' AND amount > 0) OR (type = 'BONUS' AND amount < 0)",
            name="ck_ledger_sign_by_type",
        ),
    )

PLATFORM_PARTICIPANT_ID = uuid.UUID("00000000-0000-0000-0000-000000000000")

from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime


class ParticipantResult(BaseModel):
    participant_id: UUID
    user_id: UUID
    progress: int
    outcome: str  # winner|loser
    stake_returned: bool
    stake_amount: int
    bonus_amount: int
    reward_amount: int  # stake + bonus for winners, 0 for losers
    payout_status: str | None = None
    transaction_signature: str | None = None
    error: str | None = None


class SettlementStatistics(BaseModel):
    total_participants: int
    winners: int
    losers: int
    success_rate: float
    total_staked: int
    bonus_pool: int
    forfeited_pool: int
    retained_amount: int
    total_rewards_distributed: int
    total_paid: int


class SettlementResultPublic(BaseModel):
    challenge_id: UUID
    run_id: UUID
    decimals: int
    participants: list[ParticipantResult]
    statistics: SettlementStatistics


class CloseResponse(BaseModel):
    challenge_id: UUID
    run_id: UUID
    state: str
    closed_at: datetime
    planned: bool
    evaluation: dict

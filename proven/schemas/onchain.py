from __future__ import annotations
from pydantic import BaseModel


class ChallengeAccountPublic(BaseModel):
    address: str
    creator: str
    escrow: str
    oracle: str
    stake_amount: int
    start_time: int
    end_time: int
    participant_count: int
    total_staked: int
    is_active: bool


class ParticipantAccountPublic(BaseModel):
    address: str
    challenge: str
    user: str
    stake_amount: int
    proof_count: int
    joined_at: int
    last_proof_at: int
    has_withdrawn: bool

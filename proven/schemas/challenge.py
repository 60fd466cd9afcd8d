from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator, field_serializer
from typing import Literal
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from proven.config import settings

ChallengeStatus = Literal["UPCOMING", "ACTIVE", "ENDED", "COMPLETED"]
ParticipantStatus = Literal["ACTIVE", "COMPLETED", "FAILED"]


class ChallengeCreate(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=4000)
    stake_amount: Decimal = Field(gt=0, decimal_places=6)
    total_prize_pool: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=6)
    start_date: date
    end_date: date
    escrow_address: str | None = Field(default=None, min_length=32, max_length=44)
    completion_threshold_bps: int = Field(default_factory=lambda: settings.default_completion_threshold_bps, ge=0, le=10000)

    @field_validator("stake_amount")
    @classmethod
    def stake_in_range(cls, v: Decimal):
        if v < settings.min_stake or v > settings.max_stake:
            raise ValueError(f"stake_amount must be between {settings.min_stake} and {settings.max_stake}")
        return v

    @model_validator(mode="after")
    def timeline(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        if (self.end_date - self.start_date).days > settings.max_challenge_days:
            raise ValueError(f"challenge cannot run longer than {settings.max_challenge_days} days")
        return self


class EscrowUpdate(BaseModel):
    escrow_address: str = Field(min_length=32, max_length=44)


class ChallengePublic(BaseModel):
    id: UUID
    owner_id: UUID
    title: str
    description: str | None = None
    stake_amount: Decimal
    total_prize_pool: Decimal
    start_date: date
    end_date: date
    escrow_address: str | None = None
    onchain_address: str | None = None
    completion_threshold_bps: int
    status: ChallengeStatus
    total_days: int
    participant_count: int = 0
    created_at: datetime

    @field_serializer("stake_amount", "total_prize_pool")
    def serialize_amount(self, value: Decimal) -> str:
        return format(value.normalize(), "f")


class JoinRequest(BaseModel):
    wallet_address: str = Field(min_length=32, max_length=44)
    transaction_signature: str = Field(min_length=32, max_length=128)


class ParticipantPublic(BaseModel):
    id: UUID
    challenge_id: UUID
    user_id: UUID
    stake_amount: Decimal
    wallet_address: str
    transaction_signature: str
    progress: int
    status: ParticipantStatus
    joined_at: datetime

    @field_serializer("stake_amount")
    def serialize_amount(self, value: Decimal) -> str:
        return format(value.normalize(), "f")

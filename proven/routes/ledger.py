from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from proven.config import settings
from proven.db import get_session
from proven.auth_deps import get_current_user, require_admin
from proven.models.challenge import Challenge, Participant
from proven.models.user import User
from proven.schemas.ledger import LedgerSnapshot
from proven.services.admin import AdminCapability
from proven.services.ledger import snapshot_for_challenge, get_retained_stats

router = APIRouter(tags=["ledger"])

@router.get("/ledger", response_model=LedgerSnapshot)
async def get_ledger(
    challenge_id: UUID = Query(..., alias="challengeId"),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    ch = await session.get(Challenge, challenge_id)
    if not ch:
        raise HTTPException(status_code=404, detail="Challenge not found")
    if not user.is_admin:
        part = await session.scalar(select(Participant).where(Participant.challenge_id == ch.id, Participant.user_id == user.id))
        if not part:
            raise HTTPException(status_code=403, detail="Not a participant of this challenge")
    snap = await snapshot_for_challenge(session, ch.id, user.id)
    return {"challenge_id": ch.id, "decimals": settings.stake_token_decimals, **snap}


@router.get("/platform/retained")
async def platform_retained(
    days: int = Query(default=30, ge=1, le=365, description="Number of days to look back"),
    session: AsyncSession = Depends(get_session),
    admin: AdminCapability = Depends(require_admin),
):
    """Stakes kept by the platform over the last `days`."""
    return await get_retained_stats(session, days)

from __future__ import annotations
from uuid import UUID
from datetime import datetime, timezone as dt_tz
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
import httpx
import structlog

from proven.db import get_session
from proven.auth_deps import get_current_user, get_account_reader
from proven.models.challenge import Challenge, Participant
from proven.models.settlement import SettlementRun
from proven.models.user import User
from proven.schemas.challenge import ChallengeCreate, ChallengePublic, EscrowUpdate, JoinRequest, ParticipantPublic
from proven.services.calendar import challenge_status, local_today, total_days
from proven.services.chain import RpcError
from proven.services.escrow import StakeNotVerified, to_base_units, verify_stake_transfer
from proven.services.ledger import stake_entry

router = APIRouter(prefix="/challenges", tags=["challenges"])
log = structlog.get_logger()


async def _to_public(session: AsyncSession, ch: Challenge, now: datetime | None = None) -> ChallengePublic:
    now = now or datetime.now(dt_tz.utc)
    count = await session.scalar(select(func.count()).select_from(Participant).where(Participant.challenge_id == ch.id)) or 0
    run_state = await session.scalar(select(SettlementRun.state).where(SettlementRun.challenge_id == ch.id))
    return ChallengePublic(
        id=ch.id,
        owner_id=ch.owner_id,
        title=ch.title,
        description=ch.description,
        stake_amount=ch.stake_amount,
        total_prize_pool=ch.total_prize_pool,
        start_date=ch.start_date,
        end_date=ch.end_date,
        escrow_address=ch.escrow_address,
        onchain_address=ch.onchain_address,
        completion_threshold_bps=ch.completion_threshold_bps,
        status=challenge_status(ch.start_date, ch.end_date, now, settled=run_state == "SETTLED"),
        total_days=total_days(ch.start_date, ch.end_date),
        participant_count=int(count),
        created_at=ch.created_at,
    )


def _participant_public(p: Participant) -> ParticipantPublic:
    return ParticipantPublic(
        id=p.id,
        challenge_id=p.challenge_id,
        user_id=p.user_id,
        stake_amount=p.stake_amount,
        wallet_address=p.wallet_address,
        transaction_signature=p.transaction_signature,
        progress=p.progress,
        status=p.status,
        joined_at=p.joined_at,
    )


async def load_challenge(session: AsyncSession, challenge_id: UUID) -> Challenge:
    ch = await session.get(Challenge, challenge_id)
    if not ch:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return ch


@router.post("", response_model=ChallengePublic, status_code=201)
async def create_challenge(
    payload: ChallengeCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    if payload.start_date < local_today(datetime.now(dt_tz.utc)):
        raise HTTPException(status_code=400, detail="start_date cannot be in the past")
    ch = Challenge(
        owner_id=user.id,
        title=payload.title.strip(),
        description=payload.description,
        stake_amount=payload.stake_amount,
        total_prize_pool=payload.total_prize_pool,
        start_date=payload.start_date,
        end_date=payload.end_date,
        escrow_address=payload.escrow_address,
        completion_threshold_bps=payload.completion_threshold_bps,
    )
    session.add(ch)
    await session.commit()
    await session.refresh(ch)
    log.info("challenge_created", challenge_id=str(ch.id), owner_id=str(user.id))
    return await _to_public(session, ch)


@router.get("", response_model=list[ChallengePublic])
async def list_challenges(
    session: AsyncSession = Depends(get_session),
    limit: int = Query(default=50, ge=1, le=200),
):
    rows = (await session.execute(
        select(Challenge).order_by(Challenge.start_date.desc(), Challenge.created_at.desc()).limit(limit)
    )).scalars().all()
    now = datetime.now(dt_tz.utc)
    return [await _to_public(session, ch, now) for ch in rows]


@router.get("/joined", response_model=list[ParticipantPublic])
async def my_participations(session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    rows = (await session.execute(
        select(Participant).where(Participant.user_id == user.id).order_by(Participant.joined_at.desc())
    )).scalars().all()
    return [_participant_public(p) for p in rows]


@router.get("/{challenge_id}", response_model=ChallengePublic)
async def get_challenge(challenge_id: UUID, session: AsyncSession = Depends(get_session)):
    return await _to_public(session, await load_challenge(session, challenge_id))


@router.get("/{challenge_id}/participants", response_model=list[ParticipantPublic])
async def list_participants(challenge_id: UUID, session: AsyncSession = Depends(get_session)):
    ch = await load_challenge(session, challenge_id)
    rows = (await session.execute(
        select(Participant).where(Participant.challenge_id == ch.id).order_by(Participant.joined_at.asc())
    )).scalars().all()
    return [_participant_public(p) for p in rows]


@router.put("/{challenge_id}/escrow", response_model=ChallengePublic)
async def set_escrow_address(
    challenge_id: UUID,
    payload: EscrowUpdate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    ch = await load_challenge(session, challenge_id)
    if ch.owner_id != user.id and not user.is_admin:
        raise HTTPException(status_code=403, detail="Only the owner or an admin can set the escrow wallet")
    joined = await session.scalar(select(func.count()).select_from(Participant).where(Participant.challenge_id == ch.id))
    if joined:
        raise HTTPException(status_code=409, detail="Escrow address cannot change once participants have joined")
    ch.escrow_address = payload.escrow_address
    await session.commit()
    log.info("escrow_address_set", challenge_id=str(ch.id), escrow=payload.escrow_address)
    return await _to_public(session, ch)


@router.post("/{challenge_id}/join", response_model=ParticipantPublic, status_code=201)
async def join_challenge(
    challenge_id: UUID,
    payload: JoinRequest,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    reader=Depends(get_account_reader),
):
    """
    Record a participant once their stake transfer into escrow has confirmed.
    The client runs the transfer; here we verify it on-chain before writing anything.
    """
    ch = await load_challenge(session, challenge_id)
    if challenge_status(ch.start_date, ch.end_date, datetime.now(dt_tz.utc)) != "UPCOMING":
        raise HTTPException(status_code=400, detail="Challenge has already started; joining is closed")
    if not ch.escrow_address:
        raise HTTPException(status_code=400, detail="This challenge has no escrow wallet configured yet.")

    existing = await session.scalar(
        select(Participant).where(Participant.challenge_id == ch.id, Participant.user_id == user.id)
    )
    if existing:
        raise HTTPException(status_code=409, detail="Already joined this challenge")

    try:
        await verify_stake_transfer(
            reader, payload.transaction_signature, payload.wallet_address, ch.escrow_address, to_base_units(ch.stake_amount)
        )
    except StakeNotVerified as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (httpx.HTTPError, RpcError) as e:
        log.warning("stake_verification_unavailable", challenge_id=str(ch.id), error=str(e))
        raise HTTPException(status_code=502, detail="Could not reach the network to verify the stake. Please check back shortly.")

    challenge_ref, user_ref = ch.id, user.id
    p = Participant(
        challenge_id=challenge_ref,
        user_id=user_ref,
        stake_amount=ch.stake_amount,
        wallet_address=payload.wallet_address,
        transaction_signature=payload.transaction_signature,
    )
    session.add(p)
    try:
        await session.flush()
        session.add(stake_entry(ch, p))
        await session.commit()
    except IntegrityError:
        await session.rollback()
        dup = await session.scalar(
            select(Participant).where(Participant.challenge_id == challenge_ref, Participant.user_id == user_ref)
        )
        if dup:
            raise HTTPException(status_code=409, detail="Already joined this challenge")
        raise HTTPException(status_code=409, detail="This transaction has already been used to join")
    await session.refresh(p)
    log.info("participant_joined", challenge_id=str(challenge_ref), participant_id=str(p.id), signature=p.transaction_signature)
    return _participant_public(p)

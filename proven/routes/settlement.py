from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from rq import Queue
from redis import Redis
import structlog

from proven.config import settings
from proven.db import get_session
from proven.auth_deps import require_admin, get_chain_backend, get_session_factory
from proven.schemas.settlement import CloseResponse, SettlementResultPublic
from proven.services.admin import AdminCapability
from proven.services.chain import ChainBackend
from proven.services.escrow import EscrowNotConfigured
from proven.services.settlement import ChallengeNotClosed, ChallengeNotEnded, close_challenge, get_results, run_payouts
from proven.routes.challenges import load_challenge

router = APIRouter(prefix="/challenges", tags=["settlement"])
log = structlog.get_logger()

_queue: Queue | None = None


def get_queue() -> Queue:
    global _queue
    if _queue is None:
        _queue = Queue("settlement", connection=Redis.from_url(settings.redis_url))
    return _queue


@router.post("/{challenge_id}/close", response_model=CloseResponse)
async def close(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    admin: AdminCapability = Depends(require_admin),
):
    """Close + evaluate. Safe to call repeatedly."""
    ch = await load_challenge(session, challenge_id)
    try:
        run = await close_challenge(session, admin, ch)
    except ChallengeNotEnded as e:
        raise HTTPException(status_code=400, detail=str(e))
    await session.commit()
    return CloseResponse(
        challenge_id=run.challenge_id,
        run_id=run.id,
        state=run.state,
        closed_at=run.closed_at,
        planned=run.planned_at is not None,
        evaluation=run.evaluation_json or {},
    )


@router.post("/{challenge_id}/payouts")
async def payouts(
    challenge_id: UUID,
    background: int = Query(default=0, ge=0, le=1),
    session: AsyncSession = Depends(get_session),
    admin: AdminCapability = Depends(require_admin),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    backend: ChainBackend | None = Depends(get_chain_backend),
):
    ch = await load_challenge(session, challenge_id)
    if background:
        job = get_queue().enqueue(
            "proven.jobs.settle_challenge.settle_challenge", str(ch.id), str(admin.user_id), job_timeout=900
        )
        log.info("settlement_enqueued", challenge_id=str(ch.id), job_id=job.id)
        return JSONResponse(status_code=202, content={"challenge_id": str(ch.id), "job_id": job.id, "status": "queued"})

    if backend is None:
        raise HTTPException(status_code=503, detail="Payouts are unavailable: no escrow signer is configured (CHAIN_BACKEND)")
    try:
        report = await run_payouts(session, admin, ch, backend, session_factory)
    except ChallengeNotClosed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except EscrowNotConfigured as e:
        raise HTTPException(status_code=400, detail=str(e))
    body = SettlementResultPublic.model_validate(report.result).model_dump(mode="json")
    # 207: at least one payout is FAILED or UNCONFIRMED; re-run to retry failures
    return JSONResponse(status_code=200 if report.complete else 207, content=body)


@router.get("/{challenge_id}/results", response_model=SettlementResultPublic)
async def results(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    admin: AdminCapability = Depends(require_admin),
):
    ch = await load_challenge(session, challenge_id)
    snapshot = await get_results(session, ch.id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Challenge has not been settled yet")
    return snapshot

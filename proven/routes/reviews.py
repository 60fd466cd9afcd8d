from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from proven.db import get_session
from proven.auth_deps import require_admin
from proven.schemas.review import ReviewDecision
from proven.schemas.submission import SubmissionPublic
from proven.services.admin import AdminCapability
from proven.services.review import AlreadyReviewed, InvalidDecision, ParticipantSettled, SubmissionNotFound, list_pending, review_submission
from proven.routes.submissions import to_submission_public

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.get("/pending", response_model=list[SubmissionPublic])
async def pending_queue(
    challenge_id: UUID | None = Query(default=None, alias="challengeId"),
    limit: int = Query(default=50, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
    admin: AdminCapability = Depends(require_admin),
):
    rows = await list_pending(session, admin, challenge_id, limit)
    return [to_submission_public(s) for s in rows]


@router.post("/{submission_id}")
async def review(
    submission_id: UUID,
    payload: ReviewDecision,
    session: AsyncSession = Depends(get_session),
    admin: AdminCapability = Depends(require_admin),
):
    try:
        sub, p = await review_submission(session, admin, submission_id, payload.decision, payload.comment)
    except SubmissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidDecision as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (AlreadyReviewed, ParticipantSettled) as e:
        await session.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    await session.commit()
    return {
        "submission": to_submission_public(sub),
        "participant_id": str(p.id),
        "progress": p.progress,
        "participant_status": p.status,
    }

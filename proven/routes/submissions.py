from __future__ import annotations
from uuid import UUID
from datetime import date, datetime, timezone as dt_tz
from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, File, Form
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from proven.db import get_session
from proven.auth_deps import get_current_user, get_image_store
from proven.models.challenge import Challenge, Participant
from proven.models.submission import Submission
from proven.models.user import User
from proven.schemas.submission import (
    CalendarDayPublic, CalendarPublic, CalendarSummaryPublic, SubmissionPublic,
)
from proven.services.calendar import calendar_for, status_for
from proven.services.submissions import (
    DayAlreadyReviewed, DayClosed, DayOutsideChallenge, InvalidProof, ParticipantNotActive, submit_proof,
)
from proven.routes.challenges import load_challenge

router = APIRouter(prefix="/challenges", tags=["submissions"])


def to_submission_public(s: Submission) -> SubmissionPublic:
    return SubmissionPublic(
        id=s.id,
        challenge_id=s.challenge_id,
        participant_id=s.participant_id,
        submission_date=s.submission_date,
        submitted_at=s.submitted_at,
        description=s.description,
        review_status=s.review_status,
        review_comments=s.review_comments,
        reviewed_at=s.reviewed_at,
        image_url=f"/challenges/{s.challenge_id}/submissions/{s.id}/image",
    )


async def _my_participation(session: AsyncSession, ch: Challenge, user: User) -> Participant:
    p = await session.scalar(
        select(Participant).where(Participant.challenge_id == ch.id, Participant.user_id == user.id)
    )
    if not p:
        raise HTTPException(status_code=403, detail="You are not a participant of this challenge")
    return p


@router.get("/{challenge_id}/calendar", response_model=CalendarPublic)
async def get_calendar(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    ch = await load_challenge(session, challenge_id)
    p = await _my_participation(session, ch, user)
    now = datetime.now(dt_tz.utc)
    cal = await calendar_for(session, ch, p, now)
    s = cal.summary
    return CalendarPublic(
        challenge_id=ch.id,
        participant_id=p.id,
        today=cal.today,
        status=await status_for(session, ch, now),
        days=[
            CalendarDayPublic(
                date=d.date,
                day_of_week=d.day_of_week,
                status=d.status,
                is_today=d.is_today,
                is_future=d.is_future,
                can_submit=d.can_submit,
                submission=to_submission_public(d.submission) if d.submission else None,
            ) for d in cal.days
        ],
        summary=CalendarSummaryPublic(
            total_days=s.total_days,
            approved=s.approved,
            pending=s.pending,
            rejected=s.rejected,
            missed=s.missed,
            open=s.open,
            remaining=s.remaining,
            completion_rate=round(s.completion_rate, 4),
            progress=s.progress,
        ),
    )


@router.post("/{challenge_id}/submissions", response_model=SubmissionPublic, status_code=201)
async def create_submission(
    challenge_id: UUID,
    file: UploadFile = File(..., description="proof image"),
    description: str | None = Form(default=None, max_length=2000),
    submission_date: date | None = Query(default=None, alias="date", description="calendar day covered; defaults to today"),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    store=Depends(get_image_store),
):
    ch = await load_challenge(session, challenge_id)
    p = await _my_participation(session, ch, user)
    data = await file.read()
    try:
        sub = await submit_proof(
            session, store, ch, p, data, file.content_type or "application/octet-stream",
            description=description, submission_date=submission_date,
        )
    except InvalidProof as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (ParticipantNotActive, DayOutsideChallenge, DayClosed) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DayAlreadyReviewed as e:
        raise HTTPException(status_code=409, detail=str(e))
    await session.commit()
    await session.refresh(sub)
    return to_submission_public(sub)


@router.get("/{challenge_id}/submissions", response_model=list[SubmissionPublic])
async def list_my_submissions(
    challenge_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    ch = await load_challenge(session, challenge_id)
    p = await _my_participation(session, ch, user)
    rows = (await session.execute(
        select(Submission).where(Submission.participant_id == p.id).order_by(Submission.submission_date.asc())
    )).scalars().all()
    return [to_submission_public(s) for s in rows]


@router.get("/{challenge_id}/submissions/{submission_id}/image")
async def get_submission_image(
    challenge_id: UUID,
    submission_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
    store=Depends(get_image_store),
):
    """Proof image for the submitter or an admin."""
    sub = await session.scalar(
        select(Submission).where(Submission.id == submission_id, Submission.challenge_id == challenge_id)
    )
    if not sub:
        raise HTTPException(status_code=404, detail="Submission not found")
    if not user.is_admin:
        owner = await session.get(Participant, sub.participant_id)
        if owner is None or owner.user_id != user.id:
            raise HTTPException(status_code=403, detail="Not allowed to view this proof")
    try:
        data, content_type = store.get(sub.image_ref)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Image file not found in storage")
    return Response(content=data, media_type=content_type)

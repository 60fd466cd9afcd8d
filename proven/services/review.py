from __future__ import annotations
from datetime import datetime, timezone as dt_tz
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from proven.models.challenge import Challenge, Participant
from proven.models.submission import Submission
from proven.services.admin import AdminCapability, ensure_admin
from proven.services.calendar import recompute_progress

log = structlog.get_logger()

DECISIONS = ("APPROVED", "REJECTED")


class SubmissionNotFound(Exception):
    pass


class AlreadyReviewed(Exception):
    pass


class InvalidDecision(Exception):
    pass


class ParticipantSettled(Exception):
    pass


async def review_submission(
    session: AsyncSession,
    admin: AdminCapability,
    submission_id: UUID,
    decision: str,
    comment: str | None = None,
    now: datetime | None = None,
) -> tuple[Submission, Participant]:
    """
    PENDING -> APPROVED|REJECTED exactly once, then refresh the participant's progress
    in the same transaction. The `review_status = 'PENDING'` predicate is the lock:
    of two concurrent reviews only one matches a row, the other gets AlreadyReviewed.
    A rejection never changes participant status; only settlement does. Once settlement
    has decided a participant, their remaining proofs stay PENDING.
    """
    ensure_admin(admin)
    decision = decision.upper()
    if decision not in DECISIONS:
        raise InvalidDecision(f"decision must be one of {', '.join(DECISIONS)}")
    now = now or datetime.now(dt_tz.utc)

    sub = await session.get(Submission, submission_id)
    if sub is None:
        raise SubmissionNotFound("Submission not found")

    p = await session.get(Participant, sub.participant_id)
    if p.status != "ACTIVE":
        raise ParticipantSettled("Participant has already been settled; this proof can no longer be reviewed")

    res = await session.execute(
        update(Submission)
        .where(
            Submission.id == submission_id,
            Submission.review_status == "PENDING",
            select(Participant.id).where(Participant.id == p.id, Participant.status == "ACTIVE").exists(),
        )
        .values(review_status=decision, review_comments=comment, reviewed_at=now, reviewed_by=admin.user_id)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await session.refresh(p)
        if p.status != "ACTIVE":
            raise ParticipantSettled("Participant has already been settled; this proof can no longer be reviewed")
        raise AlreadyReviewed("Submission has already been reviewed")
    await session.refresh(sub)

    ch = await session.get(Challenge, sub.challenge_id)
    progress = await recompute_progress(session, ch, p)
    await session.flush()

    log.info(
        "submission_reviewed",
        submission_id=str(sub.id),
        participant_id=str(p.id),
        decision=decision,
        progress=progress,
        reviewer=str(admin.user_id),
    )
    return sub, p


async def list_pending(session: AsyncSession, admin: AdminCapability, challenge_id: UUID | None = None, limit: int = 50) -> list[Submission]:
    ensure_admin(admin)
    q = select(Submission).where(Submission.review_status == "PENDING")
    if challenge_id:
        q = q.where(Submission.challenge_id == challenge_id)
    q = q.order_by(Submission.submission_date.asc(), Submission.submitted_at.asc()).limit(limit)
    return list((await session.execute(q)).scalars().all())

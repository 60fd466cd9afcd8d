from __future__ import annotations
import uuid
from datetime import date, datetime, timezone as dt_tz
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from proven.config import settings
from proven.models.challenge import Challenge, Participant
from proven.models.submission import Submission
from proven.services.calendar import calendar_for
from proven.services.storage import ImageStore

log = structlog.get_logger()

_EXT = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp", "image/heic": "heic"}


class SubmissionError(Exception):
    pass


class ParticipantNotActive(SubmissionError):
    pass


class DayOutsideChallenge(SubmissionError):
    pass


class DayClosed(SubmissionError):
    pass


class DayAlreadyReviewed(SubmissionError):
    pass


class InvalidProof(SubmissionError):
    pass


def _image_key(ch: Challenge, p: Participant, d: date, content_type: str) -> str:
    ext = _EXT.get(content_type, "bin")
    return f"proofs/{ch.id}/{p.id}/{d.isoformat()}/{uuid.uuid4().hex}.{ext}"


async def _overwrite_pending(session: AsyncSession, submission_id, image_ref: str, description: str | None, now: datetime) -> Submission:
    res = await session.execute(
        update(Submission)
        .where(Submission.id == submission_id, Submission.review_status == "PENDING")
        .values(image_ref=image_ref, description=description, submitted_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise DayAlreadyReviewed("This day has already been reviewed")
    sub = await session.get(Submission, submission_id)
    await session.refresh(sub)
    return sub


async def _insert_or_overwrite(
    session: AsyncSession, challenge_id, participant_id, d: date, image_ref: str, description: str | None, now: datetime
) -> Submission:
    sub = Submission(
        challenge_id=challenge_id,
        participant_id=participant_id,
        submission_date=d,
        submitted_at=now,
        image_ref=image_ref,
        description=description,
    )
    session.add(sub)
    try:
        await session.flush()
    except IntegrityError:
        # lost a race with a concurrent submit for the same day
        await session.rollback()
        existing = await session.scalar(
            select(Submission).where(Submission.participant_id == participant_id, Submission.submission_date == d)
        )
        if existing is None:
            raise
        sub = await _overwrite_pending(session, existing.id, image_ref, description, now)
    return sub


async def submit_proof(
    session: AsyncSession,
    store: ImageStore,
    ch: Challenge,
    p: Participant,
    image: bytes,
    content_type: str,
    description: str | None = None,
    submission_date: date | None = None,
    now: datetime | None = None,
) -> Submission:
    """
    Record proof for one calendar day (default: today in the challenge timezone).
    A PENDING day is overwritten in place; APPROVED/REJECTED days are final.
    The image is uploaded only once the day's row is claimed.
    """
    now = now or datetime.now(dt_tz.utc)
    if p.status != "ACTIVE":
        raise ParticipantNotActive("Participation is no longer active")
    if not image:
        raise InvalidProof("Proof image is empty")
    if len(image) > settings.max_proof_image_bytes:
        raise InvalidProof(f"Proof image exceeds {settings.max_proof_image_bytes} bytes")

    cal = await calendar_for(session, ch, p, now)
    d = submission_date or cal.today
    day = cal.day(d)
    if day is None:
        raise DayOutsideChallenge(f"{d.isoformat()} is outside the challenge window")
    if day.submission is not None and day.submission.review_status != "PENDING":
        raise DayAlreadyReviewed("This day has already been reviewed")
    if not day.can_submit:
        raise DayClosed(f"Submissions for {d.isoformat()} are closed")

    key = _image_key(ch, p, d, content_type)
    image_ref = store.ref_for(key)
    participant_id = p.id
    if day.submission is not None:
        sub = await _overwrite_pending(session, day.submission.id, image_ref, description, now)
        event = "submission_replaced"
    else:
        sub = await _insert_or_overwrite(session, ch.id, participant_id, d, image_ref, description, now)
        event = "submission_recorded"

    # the row is claimed; a refused write never reaches the bucket
    store.put(key, image, content_type)
    log.info(event, submission_id=str(sub.id), participant_id=str(participant_id), day=d.isoformat())
    return sub

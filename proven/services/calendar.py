from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone as dt_tz
from typing import Iterable, Mapping
from zoneinfo import ZoneInfo
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from proven.config import settings
from proven.models.challenge import Challenge, Participant
from proven.models.settlement import SettlementRun
from proven.models.submission import Submission

# review_status -> calendar status
_STATUS = {"PENDING": "submitted", "APPROVED": "approved", "REJECTED": "rejected"}


@dataclass
class CalendarDay:
    date: date
    day_of_week: str
    status: str  # not_submitted|submitted|approved|rejected|locked
    is_today: bool
    is_future: bool
    can_submit: bool
    submission: Submission | None = None


@dataclass
class CalendarSummary:
    total_days: int
    approved: int = 0
    pending: int = 0
    rejected: int = 0
    missed: int = 0
    open: int = 0
    remaining: int = 0

    @property
    def completion_rate(self) -> float:
        return self.approved / self.total_days if self.total_days else 0.0

    @property
    def progress(self) -> int:
        return progress_for(self.approved, self.total_days)


@dataclass
class Calendar:
    today: date
    days: list[CalendarDay] = field(default_factory=list)
    summary: CalendarSummary | None = None

    def day(self, d: date) -> CalendarDay | None:
        for cd in self.days:
            if cd.date == d:
                return cd
        return None


def progress_for(approved: int, total_days: int) -> int:
    """round_half_up(100 * approved / total_days), integer-only."""
    if total_days <= 0:
        return 0
    return (200 * approved + total_days) // (2 * total_days)


def total_days(start: date, end: date) -> int:
    return (end - start).days + 1


def local_today(now: datetime, tz_name: str | None = None) -> date:
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt_tz.utc)
    return now.astimezone(ZoneInfo(tz_name or settings.challenge_timezone)).date()


def submission_deadline(d: date, tz_name: str | None = None, grace_hours: int | None = None) -> datetime:
    """Instant after which day `d` no longer accepts submissions: end of that local day + grace."""
    tz = ZoneInfo(tz_name or settings.challenge_timezone)
    grace = settings.submission_grace_hours if grace_hours is None else grace_hours
    end_of_day = datetime.combine(d + timedelta(days=1), time(0), tzinfo=tz)
    return end_of_day.astimezone(dt_tz.utc) + timedelta(hours=grace)


def challenge_status(start: date, end: date, now: datetime, settled: bool = False, tz_name: str | None = None) -> str:
    """UPCOMING | ACTIVE | ENDED | COMPLETED, derived from the dates and settlement state."""
    today = local_today(now, tz_name)
    if today < start:
        return "UPCOMING"
    if today <= end:
        return "ACTIVE"
    return "COMPLETED" if settled else "ENDED"


def build_calendar(
    start: date,
    end: date,
    submissions: Mapping[date, Submission] | Iterable[Submission],
    now: datetime,
    tz_name: str | None = None,
    grace_hours: int | None = None,
) -> Calendar:
    """
    Day-by-day state for one participant.

    A day is open for a new (or replacement PENDING) submission while it is not in the
    future, `now` is before its deadline, and the challenge has not ended. Nothing opens
    before `start`; nothing stays open once today is past `end`.
    """
    if not isinstance(submissions, Mapping):
        submissions = {s.submission_date: s for s in submissions}
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt_tz.utc)
    today = local_today(now, tz_name)
    window_open = start <= today <= end

    summary = CalendarSummary(total_days=total_days(start, end))
    cal = Calendar(today=today, summary=summary)

    d = start
    while d <= end:
        sub = submissions.get(d)
        future = d > today
        within_grace = window_open and not future and now < submission_deadline(d, tz_name, grace_hours)

        if future:
            status, can_submit = "locked", False
            summary.remaining += 1
        elif sub is not None:
            status = _STATUS[sub.review_status]
            can_submit = sub.review_status == "PENDING" and within_grace
            if status == "approved":
                summary.approved += 1
            elif status == "rejected":
                summary.rejected += 1
            else:
                summary.pending += 1
        else:
            status, can_submit = "not_submitted", within_grace
            if can_submit:
                summary.open += 1
            else:
                summary.missed += 1

        cal.days.append(CalendarDay(
            date=d,
            day_of_week=d.strftime("%A"),
            status=status,
            is_today=d == today,
            is_future=future,
            can_submit=can_submit,
            submission=sub,
        ))
        d += timedelta(days=1)
    return cal


async def load_submissions(session: AsyncSession, participant_id) -> dict[date, Submission]:
    rows = (await session.execute(
        select(Submission).where(Submission.participant_id == participant_id)
    )).scalars().all()
    return {s.submission_date: s for s in rows}


async def calendar_for(session: AsyncSession, ch: Challenge, p: Participant, now: datetime | None = None) -> Calendar:
    now = now or datetime.now(dt_tz.utc)
    subs = await load_submissions(session, p.id)
    return build_calendar(ch.start_date, ch.end_date, subs, now)


async def recompute_progress(session: AsyncSession, ch: Challenge, p: Participant) -> int:
    """Write participant.progress from its approved days; date-independent so `now` is irrelevant."""
    subs = await load_submissions(session, p.id)
    approved = sum(
        1 for d, s in subs.items()
        if s.review_status == "APPROVED" and ch.start_date <= d <= ch.end_date
    )
    p.progress = progress_for(approved, total_days(ch.start_date, ch.end_date))
    return p.progress


async def status_for(session: AsyncSession, ch: Challenge, now: datetime | None = None) -> str:
    now = now or datetime.now(dt_tz.utc)
    run_state = await session.scalar(select(SettlementRun.state).where(SettlementRun.challenge_id == ch.id))
    return challenge_status(ch.start_date, ch.end_date, now, settled=run_state == "SETTLED")

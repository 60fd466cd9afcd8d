from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID
from datetime import date, datetime


class SubmissionPublic(BaseModel):
    id: UUID
    challenge_id: UUID
    participant_id: UUID
    submission_date: date
    submitted_at: datetime
    description: str | None = None
    review_status: str
    review_comments: str | None = None
    reviewed_at: datetime | None = None
    # storage refs are not exposed; images go through the proxy endpoint
    image_url: str


class CalendarDayPublic(BaseModel):
    date: date
    day_of_week: str
    status: str
    is_today: bool
    is_future: bool
    can_submit: bool
    submission: SubmissionPublic | None = None


class CalendarSummaryPublic(BaseModel):
    total_days: int
    approved: int
    pending: int
    rejected: int
    missed: int
    open: int
    remaining: int
    completion_rate: float
    progress: int


class CalendarPublic(BaseModel):
    challenge_id: UUID
    participant_id: UUID
    today: date
    status: str
    days: list[CalendarDayPublic]
    summary: CalendarSummaryPublic

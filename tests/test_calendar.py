from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

from proven.services.calendar import build_calendar, challenge_status, progress_for, submission_deadline, total_days

START = date(2026, 3, 2)
END = START + timedelta(days=6)


def _at(d: date, hour: int = 12) -> datetime:
    return datetime(d.year, d.month, d.day, hour, tzinfo=timezone.utc)


def _sub(d: date, status: str = "PENDING"):
    return SimpleNamespace(submission_date=d, review_status=status)


def test_seven_day_window_without_submissions():
    today = START + timedelta(days=3)
    cal = build_calendar(START, END, {}, _at(today))
    assert total_days(START, END) == 7
    assert len(cal.days) == 7
    for d in cal.days:
        if d.date > today:
            assert d.status == "locked" and d.is_future and not d.can_submit
        else:
            assert d.status == "not_submitted"
    assert [d.is_today for d in cal.days].count(True) == 1
    assert cal.day(START).day_of_week == "Monday"


def test_grace_window_keeps_yesterday_open_only():
    today = START + timedelta(days=3)
    cal = build_calendar(START, END, {}, _at(today))
    # today and yesterday are within 24h past their end of day; older days are missed
    assert cal.day(today).can_submit
    assert cal.day(today - timedelta(days=1)).can_submit
    assert not cal.day(today - timedelta(days=2)).can_submit
    assert cal.summary.open == 2
    assert cal.summary.missed == 2
    assert cal.summary.remaining == 3


def test_grace_boundary_is_exact():
    day = START + timedelta(days=1)
    deadline = submission_deadline(day, "UTC", 24)
    assert deadline == datetime(2026, 3, 5, tzinfo=timezone.utc)
    before = build_calendar(START, END, {}, deadline - timedelta(seconds=1))
    at = build_calendar(START, END, {}, deadline)
    assert before.day(day).can_submit
    assert not at.day(day).can_submit


def test_completion_rate_excludes_pending():
    statuses = ["APPROVED"] * 5 + ["PENDING", "REJECTED"]
    subs = [_sub(START + timedelta(days=i), s) for i, s in enumerate(statuses)]
    cal = build_calendar(START, END, subs, _at(END + timedelta(days=3)))
    assert cal.summary.approved == 5
    assert cal.summary.pending == 1
    assert cal.summary.rejected == 1
    assert cal.summary.progress == 71
    assert abs(cal.summary.completion_rate - 5 / 7) < 1e-9


def test_statuses_mirror_review():
    today = START + timedelta(days=2)
    subs = {
        START: _sub(START, "APPROVED"),
        START + timedelta(days=1): _sub(START + timedelta(days=1), "REJECTED"),
        today: _sub(today, "PENDING"),
    }
    cal = build_calendar(START, END, subs, _at(today))
    assert cal.day(START).status == "approved" and not cal.day(START).can_submit
    assert cal.day(START + timedelta(days=1)).status == "rejected"
    assert not cal.day(START + timedelta(days=1)).can_submit
    # pending stays replaceable while its day is open
    assert cal.day(today).status == "submitted" and cal.day(today).can_submit


def test_before_start_everything_locked():
    cal = build_calendar(START, END, {}, _at(START - timedelta(days=1)))
    assert all(d.status == "locked" and not d.can_submit for d in cal.days)


def test_after_end_nothing_open():
    subs = [_sub(END, "PENDING")]
    # inside the last day's grace period, but the challenge is over
    cal = build_calendar(START, END, subs, _at(END + timedelta(days=1), hour=1))
    assert not any(d.can_submit for d in cal.days)
    assert {d.status for d in cal.days} <= {"not_submitted", "submitted", "approved", "rejected"}


def test_single_day_challenge():
    cal = build_calendar(START, START, {}, _at(START))
    assert len(cal.days) == 1
    assert cal.summary.total_days == 1
    assert cal.days[0].can_submit


def test_progress_rounds_half_up():
    assert progress_for(5, 7) == 71
    assert progress_for(1, 8) == 13  # 12.5
    assert progress_for(0, 7) == 0
    assert progress_for(7, 7) == 100
    assert progress_for(0, 0) == 0


def test_calendar_uses_challenge_timezone():
    # 02:00 UTC is still the previous evening in New York
    now = datetime(2026, 3, 4, 2, tzinfo=timezone.utc)
    cal = build_calendar(START, END, {}, now, tz_name="America/New_York")
    assert cal.today == date(2026, 3, 3)


def test_derived_challenge_status():
    assert challenge_status(START, END, _at(START - timedelta(days=1))) == "UPCOMING"
    assert challenge_status(START, END, _at(START)) == "ACTIVE"
    assert challenge_status(START, END, _at(END)) == "ACTIVE"
    assert challenge_status(START, END, _at(END + timedelta(days=1))) == "ENDED"
    assert challenge_status(START, END, _at(END + timedelta(days=1)), settled=True) == "COMPLETED"

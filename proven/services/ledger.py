from __future__ import annotations
from uuid import UUID
from datetime import datetime, timedelta, timezone as dt_tz
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from proven.models.ledger import Ledger, PLATFORM_PARTICIPANT_ID
from proven.models.challenge import Challenge, Participant
from proven.models.user import User
from proven.schemas.ledger import LedgerEntryPublic, ParticipantBalance
from proven.services.escrow import to_base_units

# ---------- writes ----------

def stake_entry(ch: Challenge, p: Participant) -> Ledger:
    """STAKE entry for a freshly joined participant; unique per (participant, type, tx signature)."""
    return Ledger(
        challenge_id=ch.id,
        participant_id=p.id,
        type="STAKE",
        amount=-to_base_units(p.stake_amount),
        ref=p.transaction_signature,
        transaction_signature=p.transaction_signature,
        note="entry_stake",
    )

# ---------- compute: balances & pool ----------

async def snapshot_for_challenge(session: AsyncSession, challenge_id: UUID, viewer_user_id: UUID) -> dict:
    """Return balances, escrow pool, entries, and viewer balance (base units)."""
    entries = (await session.execute(
        select(Ledger).where(Ledger.challenge_id == challenge_id).order_by(Ledger.created_at.asc(), Ledger.id.asc())
    )).scalars().all()

    # Participant -> user mapping and usernames
    parts = (await session.execute(
        select(Participant, User.id, User.username)
        .join(User, User.id == Participant.user_id)
        .where(Participant.challenge_id == challenge_id)
    )).all()
    by_part: dict[UUID, tuple[UUID, str]] = {p.id: (uid, uname) for (p, uid, uname) in parts}

    balances: dict[UUID, int] = {}
    total_sum = 0
    for e in entries:
        balances[e.participant_id] = balances.get(e.participant_id, 0) + int(e.amount)
        total_sum += int(e.amount)

    pool = max(0, -total_sum)

    viewer_part = next((p for (p, uid, _u) in parts if uid == viewer_user_id), None)
    your_balance = balances.get(viewer_part.id, 0) if viewer_part else 0

    participant_balances = [
        ParticipantBalance(
            participant_id=pid,
            user_id=by_part[pid][0],
            username=by_part[pid][1] or "",
            balance=int(bal),
        ) for pid, bal in sorted(balances.items(), key=lambda kv: (-kv[1], str(kv[0])))
        if pid != PLATFORM_PARTICIPANT_ID and pid in by_part
    ]

    return {
        "pool": int(pool),
        "your_balance": int(your_balance),
        "platform_balance": int(balances.get(PLATFORM_PARTICIPANT_ID, 0)),
        "totals": participant_balances,
        "entries": [
            LedgerEntryPublic(
                id=e.id,
                challenge_id=e.challenge_id,
                participant_id=e.participant_id,
                type=e.type,
                amount=int(e.amount),
                ref=e.ref,
                transaction_signature=e.transaction_signature,
                note=e.note,
                created_at=e.created_at,
            ) for e in entries
        ],
    }


async def get_retained_stats(session: AsyncSession, days: int = 30) -> dict:
    """Stakes kept by the platform (no winners, or forfeit policy = retain)."""
    cutoff = datetime.now(dt_tz.utc) - timedelta(days=days)
    base = select(Ledger).where(
        Ledger.participant_id == PLATFORM_PARTICIPANT_ID,
        Ledger.type == "RETAINED",
        Ledger.created_at >= cutoff,
    ).subquery()

    total = await session.scalar(select(func.coalesce(func.sum(base.c.amount), 0))) or 0
    challenges = await session.scalar(select(func.count(func.distinct(base.c.challenge_id)))) or 0
    return {
        "period_days": days,
        "total_retained": int(total),
        "challenges": int(challenges),
        "avg_retained_per_challenge": int(total) // int(challenges) if challenges else 0,
    }

"""
Challenge settlement: OPEN -> CLOSED_PENDING_SETTLEMENT -> SETTLED.

close_challenge   creates the (unique) settlement run once the end date has passed and
                  stores an evaluation preview. Repeat calls return the same run.
run_payouts       plans once (claimed with `planned_at IS NULL`), then issues every
                  PENDING/FAILED payout, each claimed individually with a conditional
                  update to ISSUING. A payout that is SENT, ISSUING or UNCONFIRMED is
                  never transferred again, so re-runs and crashed runs resume safely.

All amounts are token base units. For every run:
    Σ reward_amount + retained_amount == total_staked + bonus_pool
"""
from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_tz
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from proven.config import settings
from proven.models.challenge import Challenge, Participant
from proven.models.ledger import Ledger, PLATFORM_PARTICIPANT_ID
from proven.models.settlement import SettlementRun, Payout
from proven.services.admin import AdminCapability, ensure_admin
from proven.services.calendar import local_today, recompute_progress
from proven.services.chain import ChainBackend
from proven.services.escrow import ConfirmationTimeout, EscrowNotConfigured, payout_from_escrow, to_base_units

log = structlog.get_logger()

CLOSED = "CLOSED_PENDING_SETTLEMENT"
SETTLED = "SETTLED"

# payouts in these states are never transferred again
_TERMINAL_OR_IN_FLIGHT = ("SENT", "ISSUING", "UNCONFIRMED")


class ChallengeNotEnded(Exception):
    pass


class ChallengeNotClosed(Exception):
    pass


# ---------- pure planning ----------

@dataclass
class PlannedShare:
    participant_id: UUID
    user_id: UUID
    wallet_address: str
    progress: int
    outcome: str  # winner|loser
    stake: int
    bonus: int = 0

    @property
    def reward_amount(self) -> int:
        return self.stake + self.bonus if self.outcome == "winner" else 0


@dataclass
class SettlementPlan:
    shares: list[PlannedShare] = field(default_factory=list)
    total_staked: int = 0
    bonus_pool: int = 0
    forfeited_pool: int = 0
    retained_amount: int = 0
    reward_split: str = "progress_weighted"
    forfeit_policy: str = "redistribute"

    @property
    def winners(self) -> list[PlannedShare]:
        return [s for s in self.shares if s.outcome == "winner"]

    @property
    def losers(self) -> list[PlannedShare]:
        return [s for s in self.shares if s.outcome == "loser"]

    def as_dict(self) -> dict:
        return {
            "total_staked": self.total_staked,
            "bonus_pool": self.bonus_pool,
            "forfeited_pool": self.forfeited_pool,
            "retained_amount": self.retained_amount,
            "reward_split": self.reward_split,
            "forfeit_policy": self.forfeit_policy,
            "shares": [
                {
                    "participant_id": str(s.participant_id),
                    "user_id": str(s.user_id),
                    "progress": s.progress,
                    "outcome": s.outcome,
                    "stake": s.stake,
                    "bonus": s.bonus,
                    "reward_amount": s.reward_amount,
                }
                for s in self.shares
            ],
        }


def is_winner(progress: int, threshold_bps: int) -> bool:
    # progress is a percentage, threshold is basis points
    return progress * 100 >= threshold_bps


def apportion(pool: int, shares: list[PlannedShare], weighted: bool = True) -> list[int]:
    """
    Split `pool` base units over `shares` by weight (progress, or 1 each), in whole units.

    Everyone gets floor(pool * w / W); leftover units go one each in order of higher
    progress, then larger fractional remainder, then participant id. That order keeps
    the split monotone: a higher-progress winner never gets less than a lower one.
    """
    if not shares or pool <= 0:
        return [0] * len(shares)
    weights = [s.progress if weighted else 1 for s in shares]
    total = sum(weights)
    if total == 0:
        weights = [1] * len(shares)
        total = len(shares)
    base = [pool * w // total for w in weights]
    frac = [pool * w % total for w in weights]
    leftover = pool - sum(base)
    order = sorted(range(len(shares)), key=lambda i: (-shares[i].progress, -frac[i], str(shares[i].participant_id)))
    for i in order[:leftover]:
        base[i] += 1
    return base


def plan_settlement(
    participants: list[Participant],
    stake_units: dict[UUID, int],
    bonus_pool: int,
    threshold_bps: int,
    reward_split: str | None = None,
    forfeit_policy: str | None = None,
) -> SettlementPlan:
    reward_split = reward_split or settings.reward_split
    forfeit_policy = forfeit_policy or settings.forfeit_policy

    plan = SettlementPlan(bonus_pool=bonus_pool, reward_split=reward_split, forfeit_policy=forfeit_policy)
    for p in sorted(participants, key=lambda x: str(x.id)):
        stake = stake_units[p.id]
        plan.total_staked += stake
        plan.shares.append(PlannedShare(
            participant_id=p.id,
            user_id=p.user_id,
            wallet_address=p.wallet_address,
            progress=int(p.progress),
            outcome="winner" if is_winner(int(p.progress), threshold_bps) else "loser",
            stake=stake,
        ))

    plan.forfeited_pool = sum(s.stake for s in plan.losers)
    winners = plan.winners
    if not winners:
        plan.retained_amount = plan.forfeited_pool + bonus_pool
        return plan

    if forfeit_policy == "retain":
        plan.retained_amount = plan.forfeited_pool
        pool = bonus_pool
    else:
        pool = plan.forfeited_pool + bonus_pool

    for s, amount in zip(winners, apportion(pool, winners, weighted=reward_split != "equal")):
        s.bonus = amount
    return plan


# ---------- close ----------

async def _active_participants(session: AsyncSession, challenge_id: UUID) -> list[Participant]:
    return list((await session.execute(
        select(Participant).where(Participant.challenge_id == challenge_id, Participant.status == "ACTIVE")
    )).scalars().all())


async def _plan_for(session: AsyncSession, ch: Challenge, participants: list[Participant]) -> SettlementPlan:
    for p in participants:
        await recompute_progress(session, ch, p)
    return plan_settlement(
        participants,
        {p.id: to_base_units(p.stake_amount) for p in participants},
        to_base_units(ch.total_prize_pool or 0),
        ch.completion_threshold_bps,
    )


async def close_challenge(session: AsyncSession, admin: AdminCapability, ch: Challenge, now: datetime | None = None) -> SettlementRun:
    ensure_admin(admin)
    now = now or datetime.now(dt_tz.utc)
    if local_today(now) <= ch.end_date:
        raise ChallengeNotEnded("Challenge has not ended yet")
    challenge_id = ch.id

    run = await session.scalar(select(SettlementRun).where(SettlementRun.challenge_id == challenge_id))
    if run is None:
        run = SettlementRun(challenge_id=challenge_id, state=CLOSED, closed_at=now, evaluation_json={})
        session.add(run)
        try:
            await session.flush()
        except IntegrityError:
            # concurrent close won; converge on its run
            await session.rollback()
            run = await session.scalar(select(SettlementRun).where(SettlementRun.challenge_id == challenge_id))
            ch = await session.get(Challenge, challenge_id)
        else:
            log.info("challenge_closed", challenge_id=str(challenge_id), run_id=str(run.id))

    # preview stays fresh until payouts are planned
    if run.planned_at is None:
        plan = await _plan_for(session, ch, await _active_participants(session, challenge_id))
        run.evaluation_json = plan.as_dict()
        await session.flush()
    return run


# ---------- payouts ----------

@dataclass
class PayoutReport:
    run: SettlementRun
    result: dict
    issued: int = 0

    @property
    def complete(self) -> bool:
        return all(r["payout_status"] in (None, "SENT") for r in self.result["participants"])


async def _claim_planning(session: AsyncSession, run: SettlementRun, now: datetime) -> bool:
    res = await session.execute(
        update(SettlementRun)
        .where(SettlementRun.id == run.id, SettlementRun.planned_at.is_(None))
        .values(planned_at=now)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def _persist_plan(session: AsyncSession, ch: Challenge, run: SettlementRun) -> SettlementPlan:
    participants = await _active_participants(session, ch.id)
    plan = await _plan_for(session, ch, participants)
    by_id = {p.id: p for p in participants}
    ref = str(run.id)

    if plan.bonus_pool > 0:
        session.add(Ledger(
            challenge_id=ch.id, participant_id=PLATFORM_PARTICIPANT_ID, type="BONUS",
            amount=-plan.bonus_pool, ref=ref, note="prize_pool_funding",
        ))
    for s in plan.shares:
        p = by_id[s.participant_id]
        if s.outcome == "winner":
            p.status = "COMPLETED"
            session.add(Payout(
                run_id=run.id, participant_id=p.id, wallet_address=p.wallet_address,
                stake_amount=s.stake, bonus_amount=s.bonus, total_amount=s.reward_amount,
            ))
        else:
            p.status = "FAILED"
            session.add(Ledger(
                challenge_id=ch.id, participant_id=p.id, type="FORFEIT",
                amount=0, ref=ref, note=f"forfeited_stake_{s.stake}",
            ))
    if plan.retained_amount > 0:
        session.add(Ledger(
            challenge_id=ch.id, participant_id=PLATFORM_PARTICIPANT_ID, type="RETAINED",
            amount=plan.retained_amount, ref=ref, note=f"retained_{plan.forfeit_policy}_{len(plan.winners)}_winners",
        ))
    run.evaluation_json = plan.as_dict()
    await session.flush()
    log.info(
        "settlement_planned",
        challenge_id=str(ch.id),
        run_id=str(run.id),
        winners=len(plan.winners),
        losers=len(plan.losers),
        total_staked=plan.total_staked,
        bonus_pool=plan.bonus_pool,
        retained=plan.retained_amount,
    )
    return plan


async def _issue_one(
    session_factory: async_sessionmaker,
    backend: ChainBackend,
    wallet,
    challenge_id: UUID,
    payout_id: UUID,
    sem: asyncio.Semaphore,
) -> bool:
    """Claim and transfer one payout in its own session. Returns True if a transfer was attempted."""
    async with sem:
        async with session_factory() as s:
            claimed = await s.execute(
                update(Payout)
                .where(Payout.id == payout_id, Payout.status.in_(("PENDING", "FAILED")))
                .values(status="ISSUING", attempts=Payout.attempts + 1, error=None)
                .execution_options(synchronize_session=False)
            )
            await s.commit()
            if claimed.rowcount != 1:
                return False

            payout = await s.get(Payout, payout_id)
            bound = log.bind(payout_id=str(payout_id), participant_id=str(payout.participant_id), amount=payout.total_amount)
            try:
                receipt = await payout_from_escrow(wallet, backend.ledger, payout.wallet_address, payout.total_amount)
            except ConfirmationTimeout as e:
                payout.status = "UNCONFIRMED"
                payout.transaction_signature = e.signature
                payout.error = str(e)
                bound.warning("payout_unconfirmed", signature=e.signature)
            except Exception as e:
                payout.status = "FAILED"
                payout.error = f"{type(e).__name__}: {e}"
                bound.exception("payout_failed")
            else:
                payout.status = "SENT"
                payout.transaction_signature = receipt.signature
                s.add(Ledger(
                    challenge_id=challenge_id, participant_id=payout.participant_id, type="PAYOUT",
                    amount=payout.total_amount, ref=str(payout.id),
                    transaction_signature=receipt.signature, note="challenge_payout",
                ))
                bound.info("payout_sent", signature=receipt.signature)
            await s.commit()
            return True


async def build_result(session: AsyncSession, ch: Challenge, run: SettlementRun) -> dict:
    evaluation = run.evaluation_json or {}
    shares = {s["participant_id"]: s for s in evaluation.get("shares", [])}
    payouts = {
        str(po.participant_id): po
        for po in (await session.execute(
            # payout rows are written by the per-payout sessions
            select(Payout).where(Payout.run_id == run.id).execution_options(populate_existing=True)
        )).scalars().all()
    }

    rows = []
    for pid, s in sorted(shares.items()):
        po = payouts.get(pid)
        rows.append({
            "participant_id": pid,
            "user_id": s["user_id"],
            "progress": s["progress"],
            "outcome": s["outcome"],
            "stake_returned": s["outcome"] == "winner",
            "stake_amount": s["stake"],
            "bonus_amount": s["bonus"],
            "reward_amount": s["reward_amount"],
            "payout_status": po.status if po else None,
            "transaction_signature": po.transaction_signature if po else None,
            "error": po.error if po else None,
        })

    winners = sum(1 for r in rows if r["outcome"] == "winner")
    total = len(rows)
    return {
        "challenge_id": str(ch.id),
        "run_id": str(run.id),
        "decimals": settings.stake_token_decimals,
        "participants": rows,
        "statistics": {
            "total_participants": total,
            "winners": winners,
            "losers": total - winners,
            "success_rate": round(100 * winners / total, 2) if total else 0.0,
            "total_staked": evaluation.get("total_staked", 0),
            "bonus_pool": evaluation.get("bonus_pool", 0),
            "forfeited_pool": evaluation.get("forfeited_pool", 0),
            "retained_amount": evaluation.get("retained_amount", 0),
            "total_rewards_distributed": sum(r["reward_amount"] for r in rows),
            "total_paid": sum(r["reward_amount"] for r in rows if r["payout_status"] == "SENT"),
        },
    }


async def run_payouts(
    session: AsyncSession,
    admin: AdminCapability,
    ch: Challenge,
    backend: ChainBackend,
    session_factory: async_sessionmaker,
    now: datetime | None = None,
) -> PayoutReport:
    ensure_admin(admin)
    now = now or datetime.now(dt_tz.utc)
    run = await session.scalar(select(SettlementRun).where(SettlementRun.challenge_id == ch.id))
    if run is None:
        raise ChallengeNotClosed("Close the challenge before running payouts")
    if not ch.escrow_address:
        raise EscrowNotConfigured()

    if await _claim_planning(session, run, now):
        await _persist_plan(session, ch, run)
    else:
        # planned by a concurrent run
        await session.refresh(run)
    await session.commit()

    pending = list((await session.execute(
        select(Payout.id).where(Payout.run_id == run.id, Payout.status.not_in(_TERMINAL_OR_IN_FLIGHT))
    )).scalars().all())

    issued = 0
    if pending:
        wallet = await backend.escrow_wallets.wallet_for(str(ch.id), ch.escrow_address)
        sem = asyncio.Semaphore(max(1, settings.payout_concurrency))
        attempted = await asyncio.gather(*(
            _issue_one(session_factory, backend, wallet, ch.id, pid, sem) for pid in pending
        ))
        issued = sum(1 for a in attempted if a)

    result = await build_result(session, ch, run)
    run.result_json = result
    run.state = SETTLED
    run.settled_at = now
    await session.commit()

    report = PayoutReport(run=run, result=result, issued=issued)
    log.info(
        "settlement_payouts_finished",
        challenge_id=str(ch.id),
        run_id=str(run.id),
        issued=issued,
        complete=report.complete,
    )
    return report


async def get_results(session: AsyncSession, challenge_id: UUID) -> dict | None:
    run = await session.scalar(select(SettlementRun).where(SettlementRun.challenge_id == challenge_id))
    if run is None:
        return None
    return run.result_json

from __future__ import annotations
import asyncio
from uuid import UUID
import structlog
from proven.db import SessionLocal
from proven.logging_setup import configure_logging
from proven.models.challenge import Challenge
from proven.models.user import User
from proven.services.admin import AdminCapability
from proven.services.chain import load_chain_backend
from proven.services.settlement import ChallengeNotEnded, close_challenge, run_payouts

log = structlog.get_logger()


async def _run(challenge_id: str, admin_user_id: str) -> dict | None:
    async with SessionLocal() as session:
        ch = await session.get(Challenge, UUID(challenge_id))
        admin_user = await session.get(User, UUID(admin_user_id))
        if not ch or not admin_user:
            log.warning("settle_job_skipped", challenge_id=challenge_id, reason="missing challenge or user")
            return None
        admin = AdminCapability.for_user(admin_user)
        structlog.contextvars.bind_contextvars(challenge_id=challenge_id, job="settle_challenge")
        try:
            await close_challenge(session, admin, ch)
            await session.commit()
        except ChallengeNotEnded:
            log.info("settle_job_not_ended")
            return None
        report = await run_payouts(session, admin, ch, load_chain_backend(), SessionLocal)
        return {"issued": report.issued, "complete": report.complete}


def settle_challenge(challenge_id: str, admin_user_id: str):
    """RQ entrypoint: close (if needed) and run payouts for one challenge."""
    configure_logging()
    try:
        return asyncio.run(_run(challenge_id, admin_user_id))
    finally:
        structlog.contextvars.clear_contextvars()

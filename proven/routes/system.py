from __future__ import annotations
from fastapi import APIRouter, Depends, Request
from datetime import datetime, timezone
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from proven.config import settings
from proven.db import get_session

router = APIRouter(tags=["system"])

@router.get("/health")
async def health(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        await session.execute(text("SELECT 1"))
        db = "ok"
    except SQLAlchemyError:
        db = "unavailable"
    return {
        "status": "ok" if db == "ok" else "degraded",
        "db": db,
        "env": settings.environment,
        "time": datetime.now(timezone.utc).isoformat(),
        "request_id": request.headers.get("x-request-id") or request.state.request_id,
    }

@router.get("/version")
async def version():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "git_sha": settings.git_sha,
        "stake_token": {
            "symbol": settings.stake_token_symbol,
            "mint": settings.stake_token_mint,
            "decimals": settings.stake_token_decimals,
        },
        "payouts_enabled": bool(settings.chain_backend),
    }

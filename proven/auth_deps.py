from __future__ import annotations
from uuid import UUID
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import jwt
from proven.db import get_session, SessionLocal
from proven.security import decode_token
from proven.models.user import User
from proven.services.admin import AdminCapability, NotAdmin
from proven.services.chain import AccountReader, ChainBackend, ChainBackendNotConfigured, RpcAccountReader, load_chain_backend
from proven.services.storage import ImageStore, get_image_store as _default_image_store

security = HTTPBearer()

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: AsyncSession = Depends(get_session)
) -> User:
    token = credentials.credentials
    try:
        data = decode_token(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if data.get("type") != "access":
        raise HTTPException(status_code=401, detail="Wrong token type")
    try:
        user_id = UUID(str(data.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> AdminCapability:
    try:
        return AdminCapability.for_user(user)
    except NotAdmin as e:
        raise HTTPException(status_code=403, detail=str(e))


def get_session_factory() -> async_sessionmaker:
    return SessionLocal


def get_image_store() -> ImageStore:
    return _default_image_store()


_reader: RpcAccountReader | None = None
_backend: ChainBackend | None = None


def get_account_reader() -> AccountReader:
    global _reader
    if _reader is None:
        _reader = RpcAccountReader()
    return _reader


def get_chain_backend() -> ChainBackend | None:
    """None when no escrow signer is wired; payout routes answer 503 then."""
    global _backend
    if _backend is None:
        try:
            _backend = load_chain_backend()
        except ChainBackendNotConfigured:
            return None
    return _backend

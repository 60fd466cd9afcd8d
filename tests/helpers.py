"""HTTP-level helpers shared by the API tests."""
from __future__ import annotations
import uuid
from sqlalchemy import update

from proven.models.user import User


async def register_login(ac) -> tuple[dict, uuid.UUID]:
    email = f"user-{uuid.uuid4()}@ex.com"
    username = f"user_{uuid.uuid4().hex[:8]}"
    assert (await ac.post("/auth/register", json={"email": email, "username": username, "password": "supersecret"})).status_code == 201
    r = await ac.post("/auth/login", json={"email": email, "password": "supersecret"})
    assert r.status_code == 200
    hdrs = {"Authorization": f"Bearer {r.json()['access']}"}
    me = await ac.get("/auth/me", headers=hdrs)
    return hdrs, uuid.UUID(me.json()["id"])


async def promote(session_factory, user_id: uuid.UUID) -> None:
    async with session_factory() as s:
        await s.execute(update(User).where(User.id == user_id).values(is_admin=True))
        await s.commit()

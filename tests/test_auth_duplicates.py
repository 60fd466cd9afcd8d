import uuid
from fastapi import status


async def test_duplicate_email(client):
    """Registering with a duplicate email returns 409"""
    unique_id = str(uuid.uuid4())[:8]
    email = f"duplicate-{unique_id}@example.com"

    r1 = await client.post("/auth/register", json={"email": email, "username": f"user1_{unique_id}", "password": "password1"})
    assert r1.status_code == status.HTTP_201_CREATED

    # same address, different case
    r2 = await client.post("/auth/register", json={"email": email.upper(), "username": f"user2_{unique_id}", "password": "password2"})
    assert r2.status_code == 409
    assert "email" in r2.json()["detail"].lower()


async def test_duplicate_username(client):
    """Registering with a duplicate username returns 409"""
    unique_id = str(uuid.uuid4())[:6]
    username = f"dupuser_{unique_id}"

    r1 = await client.post("/auth/register", json={"email": f"user1-{unique_id}@example.com", "username": username, "password": "password1"})
    assert r1.status_code == status.HTTP_201_CREATED

    r2 = await client.post("/auth/register", json={"email": f"user2-{unique_id}@example.com", "username": username.upper(), "password": "password2"})
    assert r2.status_code == 409
    assert "username" in r2.json()["detail"].lower()

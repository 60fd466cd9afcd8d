from datetime import datetime, timedelta, timezone
from fastapi import status

from proven.services.onchain import ChallengeAccount, PublicKey, encode_challenge_account
from factories import ESCROW
from helpers import register_login

WALLET = "JoinerWa11et" + "1" * 32
SIG = "5" * 64


def _today():
    return datetime.now(timezone.utc).date()


def _payload(**kw):
    body = {
        "title": "Run 5K daily",
        "description": "One photo of the watch per day",
        "stake_amount": "10",
        "start_date": (_today() + timedelta(days=1)).isoformat(),
        "end_date": (_today() + timedelta(days=7)).isoformat(),
        "escrow_address": ESCROW,
    }
    body.update(kw)
    return body


async def test_create_and_fetch_challenge(client):
    hdrs, user_id = await register_login(client)
    r = await client.post("/challenges", headers=hdrs, json=_payload())
    assert r.status_code == status.HTTP_201_CREATED, r.text
    ch = r.json()
    assert ch["owner_id"] == str(user_id)
    assert ch["status"] == "UPCOMING"
    assert ch["total_days"] == 7
    assert ch["stake_amount"] == "10"
    assert ch["completion_threshold_bps"] == 8000
    assert ch["participant_count"] == 0

    r = await client.get(f"/challenges/{ch['id']}")
    assert r.status_code == 200
    r = await client.get("/challenges")
    assert any(c["id"] == ch["id"] for c in r.json())


async def test_create_validation(client):
    hdrs, _ = await register_login(client)
    same_day = _payload(end_date=(_today() + timedelta(days=1)).isoformat())
    assert (await client.post("/challenges", headers=hdrs, json=same_day)).status_code == 422
    assert (await client.post("/challenges", headers=hdrs, json=_payload(stake_amount="0"))).status_code == 422
    assert (await client.post("/challenges", headers=hdrs, json=_payload(completion_threshold_bps=10001))).status_code == 422
    past = _payload(start_date=(_today() - timedelta(days=2)).isoformat())
    assert (await client.post("/challenges", headers=hdrs, json=past)).status_code == 400
    assert (await client.post("/challenges", json=_payload())).status_code in (401, 403)


async def test_join_once_with_verified_stake(client, account_reader):
    owner_hdrs, _ = await register_login(client)
    ch = (await client.post("/challenges", headers=owner_hdrs, json=_payload())).json()
    account_reader.add_stake_transfer(SIG, WALLET, ESCROW, 10_000_000)

    hdrs, user_id = await register_login(client)
    join = {"wallet_address": WALLET, "transaction_signature": SIG}
    r = await client.post(f"/challenges/{ch['id']}/join", headers=hdrs, json=join)
    assert r.status_code == 201, r.text
    p = r.json()
    assert p["user_id"] == str(user_id)
    assert p["status"] == "ACTIVE"
    assert p["progress"] == 0

    r = await client.post(f"/challenges/{ch['id']}/join", headers=hdrs, json=join)
    assert r.status_code == 409
    assert "already joined" in r.json()["detail"].lower()

    r = await client.get(f"/challenges/{ch['id']}/participants")
    assert len(r.json()) == 1
    r = await client.get("/challenges/joined", headers=hdrs)
    assert [x["challenge_id"] for x in r.json()] == [ch["id"]]

    r = await client.get("/ledger", headers=hdrs, params={"challengeId": ch["id"]})
    assert r.status_code == 200
    snap = r.json()
    assert snap["pool"] == 10_000_000
    assert snap["your_balance"] == -10_000_000
    assert [e["type"] for e in snap["entries"]] == ["STAKE"]
    assert snap["entries"][0]["transaction_signature"] == SIG

    # outsiders can't read the ledger
    other, _ = await register_login(client)
    assert (await client.get("/ledger", headers=other, params={"challengeId": ch["id"]})).status_code == 403


async def test_transaction_cannot_fund_two_seats(client, account_reader):
    owner_hdrs, _ = await register_login(client)
    ch = (await client.post("/challenges", headers=owner_hdrs, json=_payload())).json()
    account_reader.add_stake_transfer(SIG, WALLET, ESCROW, 10_000_000)
    join = {"wallet_address": WALLET, "transaction_signature": SIG}

    first, _ = await register_login(client)
    assert (await client.post(f"/challenges/{ch['id']}/join", headers=first, json=join)).status_code == 201
    second, _ = await register_login(client)
    r = await client.post(f"/challenges/{ch['id']}/join", headers=second, json=join)
    assert r.status_code == 409
    assert "transaction" in r.json()["detail"].lower()


async def test_join_rejects_unverified_stake(client, account_reader):
    owner_hdrs, _ = await register_login(client)
    ch = (await client.post("/challenges", headers=owner_hdrs, json=_payload())).json()
    hdrs, _ = await register_login(client)
    join = {"wallet_address": WALLET, "transaction_signature": SIG}

    r = await client.post(f"/challenges/{ch['id']}/join", headers=hdrs, json=join)
    assert r.status_code == 400
    assert "not found" in r.json()["detail"].lower()

    account_reader.add_stake_transfer(SIG, WALLET, ESCROW, 1_000_000)
    r = await client.post(f"/challenges/{ch['id']}/join", headers=hdrs, json=join)
    assert r.status_code == 400
    assert (await client.get(f"/challenges/{ch['id']}/participants")).json() == []


async def test_join_needs_escrow(client):
    owner_hdrs, _ = await register_login(client)
    ch = (await client.post("/challenges", headers=owner_hdrs, json=_payload(escrow_address=None))).json()
    hdrs, _ = await register_login(client)
    r = await client.post(f"/challenges/{ch['id']}/join", headers=hdrs, json={"wallet_address": WALLET, "transaction_signature": SIG})
    assert r.status_code == 400
    assert "escrow" in r.json()["detail"].lower()


async def test_escrow_is_frozen_once_joined(client, account_reader):
    owner_hdrs, _ = await register_login(client)
    ch = (await client.post("/challenges", headers=owner_hdrs, json=_payload(escrow_address=None))).json()

    stranger, _ = await register_login(client)
    r = await client.put(f"/challenges/{ch['id']}/escrow", headers=stranger, json={"escrow_address": ESCROW})
    assert r.status_code == 403

    r = await client.put(f"/challenges/{ch['id']}/escrow", headers=owner_hdrs, json={"escrow_address": ESCROW})
    assert r.status_code == 200
    assert r.json()["escrow_address"] == ESCROW

    account_reader.add_stake_transfer(SIG, WALLET, ESCROW, 10_000_000)
    hdrs, _ = await register_login(client)
    assert (await client.post(f"/challenges/{ch['id']}/join", headers=hdrs, json={"wallet_address": WALLET, "transaction_signature": SIG})).status_code == 201

    r = await client.put(f"/challenges/{ch['id']}/escrow", headers=owner_hdrs, json={"escrow_address": "Other" + ESCROW[5:]})
    assert r.status_code == 409


async def test_onchain_challenge_account(client, account_reader):
    acc = ChallengeAccount(
        creator=PublicKey(bytes(range(32))), escrow=PublicKey(bytes([7] * 32)), oracle=PublicKey(bytes(32)),
        stake_amount=10_000_000, start_time=1_760_000_000, end_time=1_760_604_800,
        participant_count=2, total_staked=20_000_000, is_active=True,
    )
    account_reader.accounts["ChallengePda"] = encode_challenge_account(acc)
    account_reader.accounts["Short"] = encode_challenge_account(acc)[:40]

    r = await client.get("/onchain/challenges/ChallengePda")
    assert r.status_code == 200
    body = r.json()
    assert body["oracle"] == "1" * 32
    assert body["total_staked"] == 20_000_000
    assert body["is_active"] is True

    assert (await client.get("/onchain/challenges/Missing")).status_code == 404
    assert (await client.get("/onchain/challenges/Short")).status_code == 422

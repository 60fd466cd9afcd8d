from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException
import httpx

from proven.auth_deps import get_account_reader
from proven.schemas.onchain import ChallengeAccountPublic, ParticipantAccountPublic
from proven.services.chain import AccountReader, RpcError
from proven.services.onchain import TruncatedRecord, decode_challenge_account, decode_participant_account

router = APIRouter(prefix="/onchain", tags=["onchain"])


async def _account_bytes(reader: AccountReader, address: str) -> bytes:
    try:
        data = await reader.get_account_data(address)
    except (httpx.HTTPError, RpcError) as e:
        raise HTTPException(status_code=502, detail=f"Ledger read failed: {e}")
    if data is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return data


@router.get("/challenges/{address}", response_model=ChallengeAccountPublic)
async def challenge_account(address: str, reader: AccountReader = Depends(get_account_reader)):
    try:
        acc = decode_challenge_account(await _account_bytes(reader, address))
    except TruncatedRecord as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ChallengeAccountPublic(
        address=address,
        creator=str(acc.creator),
        escrow=str(acc.escrow),
        oracle=str(acc.oracle),
        stake_amount=acc.stake_amount,
        start_time=acc.start_time,
        end_time=acc.end_time,
        participant_count=acc.participant_count,
        total_staked=acc.total_staked,
        is_active=acc.is_active,
    )


@router.get("/participants/{address}", response_model=ParticipantAccountPublic)
async def participant_account(address: str, reader: AccountReader = Depends(get_account_reader)):
    try:
        acc = decode_participant_account(await _account_bytes(reader, address))
    except TruncatedRecord as e:
        raise HTTPException(status_code=422, detail=str(e))
    return ParticipantAccountPublic(
        address=address,
        challenge=str(acc.challenge),
        user=str(acc.user),
        stake_amount=acc.stake_amount,
        proof_count=acc.proof_count,
        joined_at=acc.joined_at,
        last_proof_at=acc.last_proof_at,
        has_withdrawn=acc.has_withdrawn,
    )

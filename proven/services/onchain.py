"""
Decoders for the challenge program's account layouts.

Both account kinds start with the 8-byte Anchor discriminator, followed by the struct
fields little-endian, in declaration order, with no padding. Booleans are a single
byte where only 0x01 means true.
"""
from __future__ import annotations
import struct
from dataclasses import dataclass
import base58

DISCRIMINATOR_LEN = 8

# creator, escrow, oracle, stake_amount, start_time, end_time, participant_count, total_staked, is_active
_CHALLENGE = struct.Struct("<32s32s32sQqqIQB")
# challenge, user, stake_amount, proof_count, joined_at, last_proof_at, has_withdrawn
_PARTICIPANT = struct.Struct("<32s32sQIqqB")

CHALLENGE_ACCOUNT_LEN = DISCRIMINATOR_LEN + _CHALLENGE.size
PARTICIPANT_ACCOUNT_LEN = DISCRIMINATOR_LEN + _PARTICIPANT.size


class TruncatedRecord(ValueError):
    def __init__(self, kind: str, expected: int, actual: int):
        super().__init__(f"{kind} account needs {expected} bytes, got {actual}")
        self.kind = kind
        self.expected = expected
        self.actual = actual


@dataclass(frozen=True)
class PublicKey:
    raw: bytes

    def __post_init__(self):
        if len(self.raw) != 32:
            raise ValueError(f"public key must be 32 bytes, got {len(self.raw)}")

    @classmethod
    def from_base58(cls, value: str) -> "PublicKey":
        return cls(base58.b58decode(value))

    def __str__(self) -> str:
        return base58.b58encode(self.raw).decode("ascii")


@dataclass(frozen=True)
class ChallengeAccount:
    creator: PublicKey
    escrow: PublicKey
    oracle: PublicKey
    stake_amount: int
    start_time: int
    end_time: int
    participant_count: int
    total_staked: int
    is_active: bool


@dataclass(frozen=True)
class ParticipantAccount:
    challenge: PublicKey
    user: PublicKey
    stake_amount: int
    proof_count: int
    joined_at: int
    last_proof_at: int
    has_withdrawn: bool


def _body(data: bytes, layout: struct.Struct, kind: str) -> tuple:
    expected = DISCRIMINATOR_LEN + layout.size
    if len(data) < expected:
        raise TruncatedRecord(kind, expected, len(data))
    return layout.unpack_from(data, DISCRIMINATOR_LEN)


def decode_challenge_account(data: bytes) -> ChallengeAccount:
    creator, escrow, oracle, stake, start, end, count, total, active = _body(data, _CHALLENGE, "challenge")
    return ChallengeAccount(
        creator=PublicKey(creator),
        escrow=PublicKey(escrow),
        oracle=PublicKey(oracle),
        stake_amount=stake,
        start_time=start,
        end_time=end,
        participant_count=count,
        total_staked=total,
        is_active=active == 1,
    )


def decode_participant_account(data: bytes) -> ParticipantAccount:
    challenge, user, stake, proofs, joined, last_proof, withdrawn = _body(data, _PARTICIPANT, "participant")
    return ParticipantAccount(
        challenge=PublicKey(challenge),
        user=PublicKey(user),
        stake_amount=stake,
        proof_count=proofs,
        joined_at=joined,
        last_proof_at=last_proof,
        has_withdrawn=withdrawn == 1,
    )


def encode_challenge_account(acc: ChallengeAccount, discriminator: bytes = bytes(DISCRIMINATOR_LEN)) -> bytes:
    return discriminator + _CHALLENGE.pack(
        acc.creator.raw, acc.escrow.raw, acc.oracle.raw,
        acc.stake_amount, acc.start_time, acc.end_time,
        acc.participant_count, acc.total_staked, 1 if acc.is_active else 0,
    )


def encode_participant_account(acc: ParticipantAccount, discriminator: bytes = bytes(DISCRIMINATOR_LEN)) -> bytes:
    return discriminator + _PARTICIPANT.pack(
        acc.challenge.raw, acc.user.raw,
        acc.stake_amount, acc.proof_count, acc.joined_at, acc.last_proof_at,
        1 if acc.has_withdrawn else 0,
    )

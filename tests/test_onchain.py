import pytest
from proven.services.onchain import (
    CHALLENGE_ACCOUNT_LEN, PARTICIPANT_ACCOUNT_LEN, ChallengeAccount, ParticipantAccount, PublicKey, TruncatedRecord,
    decode_challenge_account, decode_participant_account, encode_challenge_account, encode_participant_account,
)

CREATOR = PublicKey(bytes(range(32)))
ESCROW = PublicKey(bytes([7] * 32))
ORACLE = PublicKey(bytes(range(32, 64)))


def _challenge(**kw) -> ChallengeAccount:
    fields = dict(
        creator=CREATOR, escrow=ESCROW, oracle=ORACLE,
        stake_amount=10_000_000, start_time=1_760_000_000, end_time=1_760_604_800,
        participant_count=3, total_staked=30_000_000, is_active=True,
    )
    fields.update(kw)
    return ChallengeAccount(**fields)


def test_layout_lengths():
    assert CHALLENGE_ACCOUNT_LEN == 8 + 133
    assert PARTICIPANT_ACCOUNT_LEN == 8 + 93


def test_challenge_round_trip():
    acc = _challenge()
    data = encode_challenge_account(acc, discriminator=b"\xaa" * 8)
    assert len(data) == CHALLENGE_ACCOUNT_LEN
    assert decode_challenge_account(data) == acc


def test_challenge_boundaries():
    acc = _challenge(stake_amount=0, start_time=-1, end_time=2**63 - 1, participant_count=2**32 - 1, total_staked=2**64 - 1)
    assert decode_challenge_account(encode_challenge_account(acc)) == acc


def test_bool_only_one_is_true():
    data = bytearray(encode_challenge_account(_challenge(is_active=True)))
    data[-1] = 0x02
    assert decode_challenge_account(bytes(data)).is_active is False
    data[-1] = 0x01
    assert decode_challenge_account(bytes(data)).is_active is True


def test_fields_are_little_endian_after_discriminator():
    data = encode_challenge_account(_challenge(stake_amount=1))
    # stake_amount follows three 32-byte keys
    assert data[8 + 96:8 + 104] == (1).to_bytes(8, "little")


def test_trailing_bytes_ignored():
    acc = _challenge()
    assert decode_challenge_account(encode_challenge_account(acc) + b"\x00" * 16) == acc


def test_truncated_challenge():
    data = encode_challenge_account(_challenge())[:-1]
    with pytest.raises(TruncatedRecord) as e:
        decode_challenge_account(data)
    assert e.value.expected == CHALLENGE_ACCOUNT_LEN
    assert e.value.actual == CHALLENGE_ACCOUNT_LEN - 1


def test_participant_round_trip_and_withdrawn_flag():
    acc = ParticipantAccount(
        challenge=ESCROW, user=CREATOR, stake_amount=0, proof_count=7,
        joined_at=1_760_000_000, last_proof_at=0, has_withdrawn=False,
    )
    data = encode_participant_account(acc)
    assert len(data) == PARTICIPANT_ACCOUNT_LEN
    assert decode_participant_account(data) == acc

    flipped = bytearray(data)
    flipped[-1] = 0xFF
    assert decode_participant_account(bytes(flipped)).has_withdrawn is False


def test_truncated_participant():
    with pytest.raises(TruncatedRecord):
        decode_participant_account(b"\x00" * 50)


def test_public_key_base58():
    key = PublicKey(bytes(32))
    assert str(key) == "11111111111111111111111111111111"
    assert PublicKey.from_base58(str(CREATOR)) == CREATOR
    with pytest.raises(ValueError):
        PublicKey(b"short")

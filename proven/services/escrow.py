"""
Token transfers into and out of a challenge escrow.

`transfer_tokens` is the single primitive: precondition checks (in a fixed order, each
with its own exception), one atomic batch (create missing token accounts, then transfer),
simulation before any signature is requested, then a bounded confirmation wait.

Outcome classification after submission:
  - confirmed with no error  -> TransferReceipt
  - confirmed with an error  -> TransferRejected   (definite: nothing moved)
  - blockhash expired        -> BlockhashExpired   (transient: never landed, safe to rebuild)
  - timed out or unknown     -> ConfirmationTimeout (ambiguous: funds may have moved, never retry)
"""
from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN
import structlog

from proven.config import settings
from proven.services.chain import (
    CreateAssociatedTokenAccount, TokenTransfer, TransactionBatch,
    LedgerClient, WalletCapability,
)

log = structlog.get_logger()


class EscrowError(Exception):
    """Base for transfer failures; `str(e)` is safe to show to the user."""


class WalletNotConnected(EscrowError):
    def __init__(self):
        super().__init__("Connect a wallet before staking.")


class EscrowNotConfigured(EscrowError):
    def __init__(self):
        super().__init__("This challenge has no escrow wallet configured yet.")


class InsufficientNativeBalance(EscrowError):
    def __init__(self, required: int, available: int, faucet_url: str):
        sol = Decimal(required) / (10 ** settings.native_decimals)
        super().__init__(
            f"You need at least {sol} SOL to cover network fees and account setup. "
            f"Get devnet SOL at {faucet_url}"
        )
        self.required = required
        self.available = available
        self.faucet_url = faucet_url


class InsufficientTokenBalance(EscrowError):
    def __init__(self, required: int, available: int, faucet_url: str):
        scale = 10 ** settings.stake_token_decimals
        super().__init__(
            f"Insufficient {settings.stake_token_symbol}: need {Decimal(required) / scale}, "
            f"have {Decimal(available) / scale}. Get devnet {settings.stake_token_symbol} at {faucet_url}"
        )
        self.required = required
        self.available = available
        self.faucet_url = faucet_url


class SimulationFailed(EscrowError):
    def __init__(self, err, logs: list[str]):
        super().__init__(f"Transaction simulation failed: {err}")
        self.err = err
        self.logs = list(logs)


class TransferRejected(EscrowError):
    def __init__(self, signature: str | None, err):
        super().__init__(f"Transfer was rejected by the network: {err}")
        self.signature = signature
        self.err = err


class BlockhashExpired(EscrowError):
    def __init__(self, signature: str):
        super().__init__("The transaction expired before it was confirmed. Nothing was transferred; please try again.")
        self.signature = signature


class ConfirmationTimeout(EscrowError):
    def __init__(self, signature: str):
        super().__init__(
            "The transfer was sent but not confirmed in time. "
            "Please check back shortly before trying again."
        )
        self.signature = signature


class StakeNotVerified(EscrowError):
    pass


@dataclass(frozen=True)
class TransferReceipt:
    signature: str
    amount: int  # base units
    source: str
    destination: str
    mint: str
    created_accounts: list[str] = field(default_factory=list)


def to_base_units(amount: Decimal | str | int, decimals: int | None = None) -> int:
    """Convert a token amount to its smallest unit, truncating below one unit."""
    decimals = settings.stake_token_decimals if decimals is None else decimals
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_base_units(units: int, decimals: int | None = None) -> Decimal:
    decimals = settings.stake_token_decimals if decimals is None else decimals
    return Decimal(units) / (Decimal(10) ** decimals)


async def transfer_tokens(
    wallet: WalletCapability | None,
    ledger: LedgerClient,
    destination_owner: str | None,
    amount: int,
    *,
    mint: str | None = None,
    reserve_lamports: int | None = None,
    confirm_timeout: float | None = None,
) -> TransferReceipt:
    mint = mint or settings.stake_token_mint
    reserve = settings.min_native_reserve_lamports if reserve_lamports is None else reserve_lamports
    timeout = settings.confirm_timeout_seconds if confirm_timeout is None else confirm_timeout

    signer = wallet.public_key if wallet is not None else None
    if not signer:
        raise WalletNotConnected()
    if not destination_owner:
        raise EscrowNotConfigured()

    native = await ledger.get_balance(signer)
    if native < reserve:
        raise InsufficientNativeBalance(reserve, native, settings.native_faucet_url)

    source = ledger.associated_token_address(signer, mint)
    destination = ledger.associated_token_address(destination_owner, mint)

    # a missing account can't be balance-checked; it gets provisioned instead
    source_balance = await ledger.get_token_account_balance(source)
    if source_balance is not None and source_balance < amount:
        raise InsufficientTokenBalance(amount, source_balance, settings.token_faucet_url)
    destination_balance = await ledger.get_token_account_balance(destination)

    batch = TransactionBatch(fee_payer=signer)
    created: list[str] = []
    if source_balance is None:
        batch.add(CreateAssociatedTokenAccount(payer=signer, account=source, owner=signer, mint=mint))
        created.append(source)
    if destination_balance is None:
        batch.add(CreateAssociatedTokenAccount(payer=signer, account=destination, owner=destination_owner, mint=mint))
        created.append(destination)
    batch.add(TokenTransfer(source=source, destination=destination, authority=signer, amount=amount))

    blockhash = await ledger.get_latest_blockhash()
    sim = await ledger.simulate_transaction(batch, blockhash)
    if not sim.ok:
        log.warning("transfer_simulation_failed", signer=signer, destination=destination_owner, err=str(sim.err), logs=sim.logs)
        raise SimulationFailed(sim.err, sim.logs)
    log.info("transfer_simulated", signer=signer, destination=destination_owner, amount=amount, created_accounts=len(created))

    signature = await wallet.send_transaction(batch, blockhash)

    try:
        confirmation = await asyncio.wait_for(wallet.confirm_transaction(signature, blockhash), timeout=timeout)
    except asyncio.TimeoutError:
        log.warning("transfer_unconfirmed", signature=signature, timeout=timeout)
        raise ConfirmationTimeout(signature)

    if confirmation.err is not None:
        log.warning("transfer_rejected", signature=signature, err=str(confirmation.err))
        raise TransferRejected(signature, confirmation.err)
    if confirmation.expired:
        log.warning("transfer_blockhash_expired", signature=signature)
        raise BlockhashExpired(signature)
    if not confirmation.confirmed:
        log.warning("transfer_unconfirmed", signature=signature, reason="no_status")
        raise ConfirmationTimeout(signature)

    log.info("transfer_confirmed", signature=signature, amount=amount, destination=destination_owner)
    return TransferReceipt(
        signature=signature, amount=amount, source=source,
        destination=destination, mint=mint, created_accounts=created,
    )


async def stake_into_escrow(wallet: WalletCapability | None, ledger: LedgerClient, challenge, **kw) -> TransferReceipt:
    return await transfer_tokens(
        wallet, ledger, challenge.escrow_address, to_base_units(challenge.stake_amount), **kw
    )


async def payout_from_escrow(escrow_wallet: WalletCapability, ledger: LedgerClient, recipient: str, amount: int, **kw) -> TransferReceipt:
    return await transfer_tokens(escrow_wallet, ledger, recipient, amount, **kw)


def _token_balance(balances: list[dict], owner: str, mint: str) -> int:
    total = 0
    for b in balances or []:
        if b.get("owner") == owner and b.get("mint") == mint:
            total += int(b["uiTokenAmount"]["amount"])
    return total


async def verify_stake_transfer(reader, signature: str, sender: str, escrow: str, amount: int, *, mint: str | None = None) -> int:
    """
    Check a confirmed transaction actually funded the stake: it succeeded, `sender`
    signed it, and the escrow's token balance for the stake mint grew by exactly
    `amount`. Returns the observed increase.
    """
    mint = mint or settings.stake_token_mint
    tx = await reader.get_transaction(signature)
    if not tx:
        raise StakeNotVerified("Transaction not found or not yet confirmed. Please check back shortly.")
    meta = tx.get("meta") or {}
    if meta.get("err") is not None:
        raise StakeNotVerified(f"Transaction failed on-chain: {meta['err']}")

    keys = (tx.get("transaction") or {}).get("message", {}).get("accountKeys", [])
    signers = {k["pubkey"] for k in keys if isinstance(k, dict) and k.get("signer")}
    if sender not in signers:
        raise StakeNotVerified("Transaction was not signed by the joining wallet")

    received = _token_balance(meta.get("postTokenBalances"), escrow, mint) - _token_balance(meta.get("preTokenBalances"), escrow, mint)
    if received != amount:
        raise StakeNotVerified(f"Escrow received {received} base units, expected {amount}")
    log.info("stake_transfer_verified", signature=signature, sender=sender, escrow=escrow, amount=received)
    return received

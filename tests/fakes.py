"""In-memory stand-ins for the ledger, wallets and image store."""
from __future__ import annotations
import asyncio
import itertools
from proven.services.chain import (
    Blockhash, ChainBackend, Confirmation, CreateAssociatedTokenAccount, SimulationResult, TokenTransfer, TransactionBatch,
)

MINT = "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"


class FakeLedger:
    def __init__(self):
        self.native: dict[str, int] = {}
        self.tokens: dict[str, int] = {}  # token account -> balance
        self.simulation_errors: dict[str, str] = {}  # destination owner -> error
        self.simulated: list[TransactionBatch] = []
        self.calls: list[str] = []

    def associated_token_address(self, owner: str, mint: str) -> str:
        return f"ata:{owner}:{mint}"

    async def get_balance(self, address: str) -> int:
        self.calls.append("get_balance")
        return self.native.get(address, 0)

    async def get_token_account_balance(self, token_account: str) -> int | None:
        self.calls.append("get_token_account_balance")
        return self.tokens.get(token_account)

    async def get_account_data(self, address: str) -> bytes | None:
        return None

    async def get_latest_blockhash(self) -> Blockhash:
        return Blockhash("hash-1", 1000)

    async def simulate_transaction(self, batch: TransactionBatch, blockhash: Blockhash) -> SimulationResult:
        self.simulated.append(batch)
        for ix in batch.instructions:
            if isinstance(ix, TokenTransfer):
                owner = ix.destination.split(":")[1]
                if owner in self.simulation_errors:
                    return SimulationResult(err=self.simulation_errors[owner], logs=["Program log: Error: " + self.simulation_errors[owner]])
        return SimulationResult()

    def apply(self, batch: TransactionBatch) -> None:
        for ix in batch.instructions:
            if isinstance(ix, CreateAssociatedTokenAccount):
                self.tokens.setdefault(ix.account, 0)
            elif isinstance(ix, TokenTransfer):
                self.tokens[ix.source] = self.tokens.get(ix.source, 0) - ix.amount
                self.tokens[ix.destination] = self.tokens.get(ix.destination, 0) + ix.amount


class FakeWallet:
    """Signs and lands every batch unless told otherwise for a destination owner."""

    _sig = itertools.count(1)

    def __init__(self, public_key: str | None, ledger: FakeLedger):
        self._public_key = public_key
        self.ledger = ledger
        self.sent: list[TransactionBatch] = []
        self.by_signature: dict[str, TransactionBatch] = {}
        self.hang_for: set[str] = set()     # confirmation never arrives
        self.reject_for: set[str] = set()   # lands with an error
        self.expire_for: set[str] = set()   # blockhash lapses
        self.unknown_for: set[str] = set()  # no status, blockhash still valid

    @property
    def public_key(self) -> str | None:
        return self._public_key

    @staticmethod
    def _destination_owner(batch: TransactionBatch) -> str:
        transfer = next(ix for ix in batch.instructions if isinstance(ix, TokenTransfer))
        return transfer.destination.split(":")[1]

    async def send_transaction(self, batch: TransactionBatch, blockhash: Blockhash) -> str:
        self.sent.append(batch)
        signature = f"sig{next(self._sig):06d}"
        self.by_signature[signature] = batch
        return signature

    async def confirm_transaction(self, signature: str, blockhash: Blockhash) -> Confirmation:
        batch = self.by_signature[signature]
        owner = self._destination_owner(batch)
        if owner in self.hang_for:
            await asyncio.sleep(30)
        if owner in self.reject_for:
            return Confirmation(confirmed=True, err={"InstructionError": [0, "Custom"]})
        if owner in self.expire_for:
            return Confirmation(confirmed=False, expired=True)
        if owner in self.unknown_for:
            return Confirmation(confirmed=False)
        self.ledger.apply(batch)
        return Confirmation(confirmed=True)


class FakeEscrowWallets:
    def __init__(self, wallet: FakeWallet):
        self.wallet = wallet
        self.requested: list[tuple[str, str]] = []

    async def wallet_for(self, challenge_id: str, escrow_address: str) -> FakeWallet:
        self.requested.append((challenge_id, escrow_address))
        return self.wallet


def make_backend(escrow_address: str, escrow_tokens: int = 10**12) -> tuple[ChainBackend, FakeLedger, FakeWallet]:
    ledger = FakeLedger()
    ledger.native[escrow_address] = 10**9
    ledger.tokens[ledger.associated_token_address(escrow_address, MINT)] = escrow_tokens
    wallet = FakeWallet(escrow_address, ledger)
    return ChainBackend(ledger=ledger, escrow_wallets=FakeEscrowWallets(wallet)), ledger, wallet


class FakeAccountReader:
    def __init__(self):
        self.transactions: dict[str, dict] = {}
        self.accounts: dict[str, bytes] = {}

    async def get_balance(self, address: str) -> int:
        return 0

    async def get_token_account_balance(self, token_account: str) -> int | None:
        return None

    async def get_account_data(self, address: str) -> bytes | None:
        return self.accounts.get(address)

    async def get_transaction(self, signature: str) -> dict | None:
        return self.transactions.get(signature)

    def add_stake_transfer(self, signature: str, sender: str, escrow: str, amount: int, err=None) -> None:
        self.transactions[signature] = {
            "meta": {
                "err": err,
                "preTokenBalances": [
                    {"accountIndex": 1, "mint": MINT, "owner": escrow, "uiTokenAmount": {"amount": "0"}},
                ],
                "postTokenBalances": [
                    {"accountIndex": 1, "mint": MINT, "owner": escrow, "uiTokenAmount": {"amount": str(amount)}},
                ],
            },
            "transaction": {
                "message": {
                    "accountKeys": [
                        {"pubkey": sender, "signer": True, "writable": True},
                        {"pubkey": f"ata:{escrow}:{MINT}", "signer": False, "writable": True},
                    ],
                },
            },
        }


class MemoryImageStore:
    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}

    def ref_for(self, key: str) -> str:
        return f"mem://{key}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        ref = self.ref_for(key)
        self.objects[ref] = (data, content_type)
        return ref

    def get(self, ref: str) -> tuple[bytes, str]:
        if ref not in self.objects:
            raise FileNotFoundError(ref)
        return self.objects[ref]

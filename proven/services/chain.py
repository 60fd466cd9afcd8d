"""
Contracts for the external ledger collaborators, plus a read-only JSON-RPC client.

The engine never signs anything itself: a WalletCapability (user wallet on the way in,
escrow wallet on the way out) signs and sends, a LedgerClient answers reads and
simulations. Concrete signing backends are plugged in through `settings.chain_backend`.
"""
from __future__ import annotations
import base64
import importlib
from dataclasses import dataclass, field
from typing import Any, Protocol, Union, runtime_checkable
import httpx
import structlog

from proven.config import settings

log = structlog.get_logger()


# ---------- instructions ----------

@dataclass(frozen=True)
class CreateAssociatedTokenAccount:
    payer: str
    account: str
    owner: str
    mint: str


@dataclass(frozen=True)
class TokenTransfer:
    source: str
    destination: str
    authority: str
    amount: int  # token base units


Instruction = Union[CreateAssociatedTokenAccount, TokenTransfer]


@dataclass
class TransactionBatch:
    """Instructions that land atomically in a single transaction."""
    fee_payer: str
    instructions: list[Instruction] = field(default_factory=list)

    def add(self, ix: Instruction) -> "TransactionBatch":
        self.instructions.append(ix)
        return self


@dataclass(frozen=True)
class Blockhash:
    blockhash: str
    last_valid_block_height: int


@dataclass(frozen=True)
class SimulationResult:
    err: Any = None
    logs: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.err is None


@dataclass(frozen=True)
class Confirmation:
    """Outcome of waiting for a signature. `expired` means the blockhash lapsed unconfirmed."""
    confirmed: bool
    err: Any = None
    expired: bool = False


# ---------- collaborator contracts ----------

@runtime_checkable
class AccountReader(Protocol):
    async def get_balance(self, address: str) -> int: ...
    async def get_token_account_balance(self, token_account: str) -> int | None: ...
    async def get_account_data(self, address: str) -> bytes | None: ...


@runtime_checkable
class LedgerClient(AccountReader, Protocol):
    async def get_latest_blockhash(self) -> Blockhash: ...
    async def simulate_transaction(self, batch: TransactionBatch, blockhash: Blockhash) -> SimulationResult: ...
    def associated_token_address(self, owner: str, mint: str) -> str: ...


@runtime_checkable
class WalletCapability(Protocol):
    @property
    def public_key(self) -> str | None: ...
    async def send_transaction(self, batch: TransactionBatch, blockhash: Blockhash) -> str: ...
    async def confirm_transaction(self, signature: str, blockhash: Blockhash) -> Confirmation: ...


class EscrowWallets(Protocol):
    async def wallet_for(self, challenge_id: str, escrow_address: str) -> WalletCapability: ...


@dataclass
class ChainBackend:
    ledger: LedgerClient
    escrow_wallets: EscrowWallets


class ChainBackendNotConfigured(Exception):
    pass


def load_chain_backend(target: str | None = None) -> ChainBackend:
    """Resolve `module:factory` from settings and call the factory."""
    target = target if target is not None else settings.chain_backend
    if not target:
        raise ChainBackendNotConfigured("CHAIN_BACKEND is not set; payouts need an escrow signer")
    module_name, _, attr = target.partition(":")
    factory = getattr(importlib.import_module(module_name), attr or "build_backend")
    backend = factory()
    log.info("chain_backend_loaded", backend=target)
    return backend


# ---------- JSON-RPC reader ----------

class RpcError(Exception):
    def __init__(self, method: str, error: dict):
        super().__init__(f"{method}: {error.get('message', error)}")
        self.method = method
        self.code = error.get("code")


class RpcAccountReader:
    """Read-only Solana JSON-RPC client (balances, raw account bytes, confirmed transactions)."""

    def __init__(self, url: str | None = None, client: httpx.AsyncClient | None = None, commitment: str = "confirmed"):
        self.url = url or settings.solana_rpc_url
        self.commitment = commitment
        self._client = client or httpx.AsyncClient(timeout=settings.rpc_timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, *params) -> Any:
        r = await self._client.post(self.url, json={"jsonrpc": "2.0", "id": 1, "method": method, "params": list(params)})
        r.raise_for_status()
        body = r.json()
        if body.get("error"):
            raise RpcError(method, body["error"])
        return body.get("result")

    async def get_balance(self, address: str) -> int:
        res = await self._call("getBalance", address, {"commitment": self.commitment})
        return int(res["value"])

    async def get_token_account_balance(self, token_account: str) -> int | None:
        try:
            res = await self._call("getTokenAccountBalance", token_account, {"commitment": self.commitment})
        except RpcError as e:
            # -32602: "could not find account"
            if e.code == -32602:
                return None
            raise
        return int(res["value"]["amount"])

    async def get_account_data(self, address: str) -> bytes | None:
        res = await self._call("getAccountInfo", address, {"encoding": "base64", "commitment": self.commitment})
        value = (res or {}).get("value")
        if not value:
            return None
        data, _encoding = value["data"]
        return base64.b64decode(data)

    async def get_transaction(self, signature: str) -> dict | None:
        return await self._call(
            "getTransaction", signature,
            {"encoding": "jsonParsed", "commitment": self.commitment, "maxSupportedTransactionVersion": 0},
        )

from __future__ import annotations
import os
from decimal import Decimal
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "proven-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "PROVEN")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/proven_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    s3_endpoint: str = os.getenv("S3_ENDPOINT", "http://minio:9000")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    s3_bucket_uploads: str = os.getenv("S3_BUCKET_UPLOADS", "proven-proofs-dev")
    max_proof_image_bytes: int = int(os.getenv("MAX_PROOF_IMAGE_BYTES", str(10 * 1024 * 1024)))

    # Auth
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    access_ttl_min: int = int(os.getenv("ACCESS_TTL_MIN", "15"))
    refresh_ttl_min: int = int(os.getenv("REFRESH_TTL_MIN", "10080"))  # 7d

    # Ledger / staking token
    solana_rpc_url: str = os.getenv("SOLANA_RPC_URL", "https://api.devnet.solana.com")
    stake_token_mint: str = os.getenv("STAKE_TOKEN_MINT", "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU")  # devnet USDC
    stake_token_symbol: str = os.getenv("STAKE_TOKEN_SYMBOL", "USDC")
    stake_token_decimals: int = int(os.getenv("STAKE_TOKEN_DECIMALS", "6"))
    native_decimals: int = int(os.getenv("NATIVE_DECIMALS", "9"))
    min_stake: Decimal = Decimal(os.getenv("MIN_STAKE", "0.01"))
    max_stake: Decimal = Decimal(os.getenv("MAX_STAKE", "10000"))
    min_native_reserve_lamports: int = int(os.getenv("MIN_NATIVE_RESERVE_LAMPORTS", "5000000"))  # 0.005 SOL: fees + up to two ATAs
    confirm_timeout_seconds: float = float(os.getenv("CONFIRM_TIMEOUT_SECONDS", "60"))
    rpc_timeout_seconds: float = float(os.getenv("RPC_TIMEOUT_SECONDS", "15"))
    native_faucet_url: str = os.getenv("NATIVE_FAUCET_URL", "https://faucet.solana.com/")
    token_faucet_url: str = os.getenv("TOKEN_FAUCET_URL", "https://spl-token-faucet.com/?token-name=USDC")
    # "module:factory" returning a ChainBackend (ledger client + escrow signers)
    chain_backend: str = os.getenv("CHAIN_BACKEND", "")

    # Challenge calendar
    challenge_timezone: str = os.getenv("CHALLENGE_TIMEZONE", "UTC")
    submission_grace_hours: int = int(os.getenv("SUBMISSION_GRACE_HOURS", "24"))
    max_challenge_days: int = int(os.getenv("MAX_CHALLENGE_DAYS", "365"))

    # Settlement
    default_completion_threshold_bps: int = int(os.getenv("DEFAULT_COMPLETION_THRESHOLD_BPS", "8000"))
    payout_concurrency: int = int(os.getenv("PAYOUT_CONCURRENCY", "4"))
    reward_split: str = os.getenv("REWARD_SPLIT", "progress_weighted")  # progress_weighted|equal
    forfeit_policy: str = os.getenv("FORFEIT_POLICY", "redistribute")  # redistribute|retain

settings = Settings()

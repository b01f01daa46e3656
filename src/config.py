import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


def get_env_file() -> str:
    """Determine which .env file to load based on APP_ENV."""
    app_env = os.getenv("APP_ENV", "").lower()
    if app_env == "local":
        return ".env.local"
    elif app_env == "prod":
        return ".env.prod"
    return ".env"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=get_env_file(), extra="ignore")

    # Index backend: "supabase" or "postgres"
    db_mode: str = "supabase"

    # Supabase config (used when db_mode="supabase")
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # PostgreSQL config (used when db_mode="postgres")
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "funmarket"
    postgres_password: str = "funmarket"
    postgres_db: str = "funmarket"

    log_level: str = "INFO"

    # On-chain program and RPC
    program_id: Optional[str] = None
    rpc_endpoint: str = "https://api.devnet.solana.com"
    service_signer_secret: Optional[str] = None  # base58 or JSON byte array, 64 bytes

    # Bearer token shared with the scheduler
    shared_cron_secret: Optional[str] = None

    batch_limit: int = 50
    confirmation_timeout_ms: int = 90_000
    poll_interval_ms: int = 1_200
    submit_max_retries: int = 3
    cancel_grace_hours: int = 48

    lease_ttl_seconds: Optional[int] = None

    markets_table: str = "markets"
    history_table: str = "market_resolution_history"
    lease_table: str = "job_leases"

    server_host: str = "0.0.0.0"
    server_port: int = 8000

    @property
    def postgres_dsn(self) -> str:
        return f"postgresql://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    @property
    def confirmation_timeout_seconds(self) -> float:
        return self.confirmation_timeout_ms / 1000

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def effective_lease_ttl_seconds(self) -> int:
        # Worst case is every candidate hitting the confirmation timeout.
        if self.lease_ttl_seconds is not None:
            return self.lease_ttl_seconds
        return int(self.batch_limit * self.confirmation_timeout_seconds) + 60

"""Ledger, charging and refund worker settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optimistic-lock retries before a mutation surfaces as a conflict
    LEDGER_MAX_RETRIES: int = 5

    INFERENCE_TIMEOUT_SECONDS: float = 60.0
    # Held reservations older than timeout + grace are treated as abandoned
    RESERVATION_GRACE_SECONDS: float = 120.0

    REFUND_WORKER_ENABLED: bool = True
    REFUND_RETRY_INTERVAL_SECONDS: float = 30.0
    REFUND_RETRY_BATCH_SIZE: int = 50
    # Reservations that failed this many refunds are left for manual reconciliation
    REFUND_MAX_ATTEMPTS: int = 10


ledger_settings = LedgerSettings()

"""
Settings — process configuration from EXACTLY_* environment variables.

    settings = Settings()                        # env + defaults
    ledger = DedupLedger(store, settings.ledger_policy())
"""

from datetime import timedelta
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from exactly.delivery import RedeliveryPolicy
from exactly.ledger import LedgerPolicy

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """
    Process settings.

    Loaded from model defaults, then EXACTLY_* environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="EXACTLY_",
        case_sensitive=False,
        extra="ignore",
    )

    # Ledger
    lease_seconds: float = Field(default=60.0, gt=0, description="Lease duration, >= longest attempt")
    relaxed: bool = Field(default=False, description="Mark done before the side effect (at most once)")

    # Infrastructure
    database_url: str = Field(
        default="sqlite+aiosqlite:///exactly.db",
        description="SQLAlchemy async URL of the record store",
    )
    service_base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the downstream services",
    )
    request_timeout: float = Field(default=10.0, gt=0, description="Downstream call timeout, seconds")

    # Logging
    log_level: LogLevel = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")

    # Redelivery
    redelivery_attempts: int = Field(default=11, ge=1)
    redelivery_initial: float = Field(default=1.0, ge=0)
    redelivery_max_delay: float = Field(default=60.0, ge=0)

    def ledger_policy(self) -> LedgerPolicy:
        return (
            LedgerPolicy()
            .with_lease(delta=timedelta(seconds=self.lease_seconds))
            .with_relaxed(self.relaxed)
        )

    def redelivery_policy(self) -> RedeliveryPolicy:
        return (
            RedeliveryPolicy()
            .with_attempts(self.redelivery_attempts)
            .with_backoff(initial=self.redelivery_initial, max_delay=self.redelivery_max_delay)
        )


__all__ = ("LogLevel", "Settings")

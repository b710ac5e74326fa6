"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from loguru import logger
from pydantic import Field, ImportString, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from referral_core.config.constants import (
    DEFAULT_INTENT_TTL_MINUTES,
    PAYOUT_MAX_RETRIES,
    TRANSFER_TIMEOUT_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (for Dramatiq and distributed locks)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str = "logs/referral_core.log"

    # Settlement currency (all amounts are integer minor units of it)
    settlement_currency: str = "USDC"
    currency_decimals: int = Field(
        default=6, ge=0, le=18,
        description="Decimals of the settlement currency (6 = micro-USDC)"
    )

    # Compensation plan
    tree_fan_out: int = Field(default=3, ge=1, description="Children per position")
    structure_depth: int = Field(
        default=6, ge=1, description="Levels below the structure owner"
    )
    max_structures: int = Field(default=6, ge=1)
    referrals_per_structure: int = Field(
        default=3, ge=1,
        description="Active direct referrals needed per unlocked structure"
    )
    base_rate_bps: int = Field(
        default=1000, ge=0, le=10000,
        description="Residual rate of structure 1 in basis points (10%)"
    )
    rate_step_bps: int = Field(
        default=100, ge=0, le=10000,
        description="Rate increase per additional structure (1%)"
    )
    elite_rate_bps: int = Field(
        default=1600, ge=0, le=10000,
        description="Flat rate once every structure is completed (16%)"
    )

    # Prices, in minor units
    initial_unlock_amount: int = Field(default=499_000_000, gt=0)
    monthly_subscription_amount: int = Field(default=199_000_000, gt=0)
    weekly_subscription_amount: int = Field(default=49_750_000, gt=0)
    direct_bonus_amount: int = Field(
        default=249_500_000, gt=0,
        description="Fixed direct bonus (50% of initial unlock)"
    )

    # Payouts
    payout_max_retries: int = Field(default=PAYOUT_MAX_RETRIES, ge=1)
    transfer_timeout_seconds: float = Field(
        default=TRANSFER_TIMEOUT_SECONDS, gt=0,
        description="Upper bound for a single external transfer call"
    )

    # Crypto payment intents
    payment_intent_ttl_minutes: int = Field(
        default=DEFAULT_INTENT_TTL_MINUTES, gt=0
    )
    late_payment_grace_minutes: int | None = Field(
        default=None, ge=0,
        description=(
            "How long after expiry a full payment is still honoured. "
            "None keeps late payments acceptable until the intent is swept."
        )
    )

    # Provider adapters for background jobs, "package.module:factory"
    transfer_executor_factory: ImportString | None = None
    chain_observer_factory: ImportString | None = None

    # Scheduler health endpoints
    health_host: str = "0.0.0.0"
    health_port: int = 8081

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(('postgresql://', 'postgresql+asyncpg://', 'sqlite+aiosqlite://')):
            raise ValueError(
                'DATABASE_URL must start with postgresql+asyncpg:// '
                '(or sqlite+aiosqlite:// for local runs)'
            )
        return v

    @field_validator('settlement_currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Normalize currency code."""
        return v.strip().upper()

    @model_validator(mode='after')
    def validate_rate_schedule(self) -> 'Settings':
        """Top structure rate must not exceed the elite override."""
        top_rate = self.base_rate_bps + (self.max_structures - 1) * self.rate_step_bps
        if top_rate > 10000:
            raise ValueError(f"Rate schedule exceeds 100%: {top_rate} bps")
        if self.elite_rate_bps < top_rate:
            logger.warning(
                f"Elite rate {self.elite_rate_bps} bps is below the top "
                f"structure rate {top_rate} bps"
            )
        return self


# Global settings instance
settings = Settings()

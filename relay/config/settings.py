"""
Application settings.

Loads configuration from environment variables and an optional JSON
file using pydantic-settings.
"""

import os
from decimal import Decimal

from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from relay.config.constants import DEFAULT_PROVIDER_CONFIGS, TIER_WINDOWS


class ProviderConfig(BaseModel):
    """
    Access policy of one chain-data provider.

    Either tiered rate limits [per sec, min, hour, day, week] or a fixed
    cooldown between calls. A tier of 0 is disabled and defers to the
    next coarser tier.
    """

    rate_limits: list[int] | None = None
    cool_time: float | None = Field(default=None, gt=0)
    api_key: str | None = None

    @field_validator("rate_limits")
    @classmethod
    def validate_rate_limits(cls, v: list[int] | None) -> list[int] | None:
        """Validate tier count and values."""
        if v is None:
            return v
        if len(v) > len(TIER_WINDOWS):
            raise ValueError(
                f"rate_limits takes at most {len(TIER_WINDOWS)} tiers "
                "(sec, min, hour, day, week)"
            )
        if any(n < 0 for n in v):
            raise ValueError("rate_limits must not be negative")
        return v

    @property
    def uses_cooldown(self) -> bool:
        """Cooldown wins when both policies are given."""
        return self.cool_time is not None


class CoinConfig(BaseModel):
    """Coin served by the relay and how it is bound to a provider."""

    symbol: str
    label: str = ""
    provider: str | None = None
    provider_coin: str | None = None
    limit: Decimal | None = Field(default=None, gt=0)
    explorer: str = ""
    addresses: list[str] = Field(default_factory=list)

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        """Coin symbols are stored lowercase."""
        v = v.strip().lower()
        if not v:
            raise ValueError("Coin symbol must not be empty")
        return v


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Balance polling
    balance_wait_min: int = Field(
        default=300, gt=0, description="Minimum wait between balance checks (s)"
    )
    balance_wait_factor: float = Field(
        default=2.0, ge=1.0, description="Backoff growth factor for unchanged balances"
    )
    balance_wait_max: int = Field(
        default=604800, gt=0, description="Maximum wait between balance checks (s)"
    )
    balance_epoch: int = Field(
        default=300, gt=0, description="Interval of the pending-address sweep (s)"
    )

    # Payment sessions
    tx_ttl: int = Field(
        default=900, gt=0, description="Payment session lifetime (s)"
    )
    tx_sweep_interval: int = Field(
        default=60, gt=0, description="Interval of the expired-session sweep (s)"
    )

    # Accounts
    account_limit: Decimal = Field(
        default=Decimal("1000"),
        gt=0,
        description="Fiat value at which an address is closed"
    )
    fiat: str = "EUR"

    # Providers, coins and accounts
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    coins: list[CoinConfig] = Field(default_factory=list)
    accounts: list[str] = Field(
        default_factory=list, description="Account labels registered at startup"
    )

    # Application
    environment: str = "production"
    log_level: str = "INFO"
    log_file: str = "logs/relay.log"
    health_check_port: int = Field(
        default=8080, ge=1, le=65535, description="Health check HTTP server port"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Environment first, then the JSON relay configuration file."""
        json_settings = JsonConfigSettingsSource(
            settings_cls, json_file=os.environ.get("RELAY_CONFIG", "relay.json")
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            json_settings,
            file_secret_settings,
        )

    @model_validator(mode='after')
    def validate_wait_bounds(self) -> 'Settings':
        """Polling interval bounds must be ordered."""
        if self.balance_wait_min > self.balance_wait_max:
            raise ValueError(
                'BALANCE_WAIT_MIN must not exceed BALANCE_WAIT_MAX'
            )
        return self

    @model_validator(mode='after')
    def set_provider_defaults(self) -> 'Settings':
        """Fill in access policies for providers not configured explicitly."""
        for name, fields in DEFAULT_PROVIDER_CONFIGS.items():
            if name not in self.providers:
                self.providers[name] = ProviderConfig(**fields)
        return self

    @model_validator(mode='after')
    def validate_unique_coins(self) -> 'Settings':
        """Each coin symbol may be configured once."""
        seen: set[str] = set()
        for coin in self.coins:
            if coin.symbol in seen:
                raise ValueError(f'Coin "{coin.symbol}" configured twice')
            seen.add(coin.symbol)
        return self

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if v.startswith('postgresql://'):
            logger.warning(
                'DATABASE_URL uses the sync postgresql:// scheme, '
                'switching to postgresql+asyncpg://'
            )
            return 'postgresql+asyncpg://' + v[len('postgresql://'):]
        if not v.startswith(('postgresql+asyncpg://', 'sqlite+aiosqlite://')):
            raise ValueError(
                'DATABASE_URL must start with postgresql://, '
                'postgresql+asyncpg:// or sqlite+aiosqlite://'
            )
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level names."""
        v = v.upper()
        if v not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f'Invalid LOG_LEVEL: {v}')
        return v


# Global settings instance
settings = Settings()

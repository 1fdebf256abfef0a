"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Launchpad Tracker application, loading and validating environment
variables at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

# Platform-wide supply for tokens issued through the launch platform (1B, 18 decimals).
STANDARD_TOTAL_SUPPLY = 10**27


def _parse_address_list(v: object, *, name: str) -> tuple[str, ...]:
    if v is None:
        raise ValueError(f"{name} must be set")
    if isinstance(v, str):
        parts = [p.strip() for p in v.split(",") if p.strip()]
        return tuple(p.lower() for p in parts)
    if isinstance(v, (list, tuple)):
        return tuple(str(x).lower() for x in v)
    raise TypeError(f"Invalid {name} type")


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="sqlite+aiosqlite:///launchpad_tracker.db",
        alias="DATABASE_URL",
        description="PostgreSQL (asyncpg) or SQLite (aiosqlite) connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="redis://localhost:6379",
        alias="REDIS_URL",
        description="Redis connection string",
    )
    enabled: bool = Field(
        default=True,
        alias="REDIS_ENABLED",
        description="Cache immutable RPC results (receipts, blocks, token metadata) in Redis",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class ChainSettings(BaseSettings):
    """Blockchain RPC settings."""

    model_config = SettingsConfigDict(env_prefix="CHAIN_", extra="ignore")

    rpc_url: str = Field(
        default="https://bsc-dataseed.binance.org",
        alias="CHAIN_RPC_URL",
        description="Primary RPC endpoint",
    )
    fallback_rpc_url: str | None = Field(
        default=None,
        alias="CHAIN_FALLBACK_RPC_URL",
        description="Fallback RPC endpoint",
    )
    max_requests_per_second: float = Field(
        default=25.0,
        alias="CHAIN_MAX_REQUESTS_PER_SECOND",
        gt=0,
        le=1000,
        description="Client-side rate limit for RPC calls",
    )
    block_poll_interval_seconds: float = Field(
        default=3.0,
        alias="CHAIN_BLOCK_POLL_INTERVAL_SECONDS",
        gt=0,
        le=60,
        description="How often to check for a new block",
    )
    max_rpc_concurrency: int = Field(
        default=5,
        alias="CHAIN_MAX_RPC_CONCURRENCY",
        ge=1,
        le=100,
        description="Maximum concurrent enrichment calls (metadata probes, receipts)",
    )

    @field_validator("rpc_url", "fallback_rpc_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("RPC URL must be an HTTP(S) endpoint")
        return v


class PlatformSettings(BaseSettings):
    """Launch platform addresses and detection heuristics."""

    model_config = SettingsConfigDict(env_prefix="PLATFORM_", extra="ignore")

    address: str = Field(
        default="0x5c952063c7fc8610ffdb798152d69f0b9550762b",
        alias="PLATFORM_ADDRESS",
        description="Launch platform contract mediating issuance, buys and sells",
    )
    infrastructure_addresses: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(
            "0x48735904455eda3aa9a0c9e43ee9999c795e30b9",  # helper
            "0x1de460f363af910f51726def188f9004276bf4bc",  # trading contract
        ),
        alias="PLATFORM_INFRASTRUCTURE_ADDRESSES",
        description="Other platform contracts whose transfers are never classified (comma-separated)",
    )
    settlement_asset: str = Field(
        default="0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c",
        alias="PLATFORM_SETTLEMENT_ASSET",
        description="Asset the platform pairs launched tokens against (WBNB)",
    )
    excluded_tokens: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(
            "0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c",  # WBNB
            "0x55d398326f99059ff775485246999027b3197955",  # USDT
            "0x8ac76a51cc950d9822d68b83fe1ad97b32cd580d",  # USDC
            "0x2170ed0880ac9a755fd29b2688956bd959f933f8",  # ETH
            "0x7130d2a12b9bcbfae4f2634d864a1ee1ce3ead9c",  # BTCB
            "0x1af3f329e8be154074d8769d1ffa4ee058b1dbc3",  # DAI
            "0x7083609fce4d1d8dc0c979aab8c869ea2c873402",  # DOT
        ),
        alias="PLATFORM_EXCLUDED_TOKENS",
        description="Token contracts never considered for creation detection (comma-separated)",
    )
    exchange_contracts: Annotated[dict[str, str], NoDecode] = Field(
        default={
            "0x10ed43c718714eb63d5aa57b78b54704e256024e": "pancakeswap",
            "0x13f4ea83d0bd40e75c8222255bc855a974568dd4": "pancakeswap-v3",
            "0x05ff2b0db69458a0750badebc4f9e13add608c7f": "pancakeswap-v1",
            "0xcf0febd3f17cef5b47b0cd257acf6025c5bff3b7": "apeswap",
            "0x7fa69aa3cd15409f424f3bf91576c97f78166a12": "aggregator",
            "0x2b6e6e4def77583229299cf386438a227e683b28": "gmgn.ai",
        },
        alias="PLATFORM_EXCHANGE_CONTRACTS",
        description="External exchange contracts as address=label pairs (comma-separated)",
    )
    total_supply: int | None = Field(
        default=None,
        alias="PLATFORM_TOTAL_SUPPLY",
        gt=0,
        description=(
            "Fixed total supply for launched tokens; unset reads totalSupply() "
            "and falls back to the observed mint amount "
            f"(platform standard is {STANDARD_TOTAL_SUPPLY})"
        ),
    )
    creator_strategy: Literal["last_log_recipient", "transaction_sender"] = Field(
        default="last_log_recipient",
        alias="PLATFORM_CREATOR_STRATEGY",
        description="How the creator of a detected token is determined",
    )
    probe_metadata: bool = Field(
        default=True,
        alias="PLATFORM_PROBE_METADATA",
        description="Read name/symbol/decimals/totalSupply from newly detected token contracts",
    )
    verify_settlement_with_receipt: bool = Field(
        default=False,
        alias="PLATFORM_VERIFY_SETTLEMENT_WITH_RECEIPT",
        description="Fetch the receipt to confirm a wallet transfer carries no settlement-asset leg",
    )

    @field_validator("address", "settlement_asset")
    @classmethod
    def _lower_address(cls, v: str) -> str:
        if not (v.startswith("0x") and len(v) == 42):
            raise ValueError("Address must be a 0x-prefixed 20-byte hex string")
        return v.lower()

    @field_validator("infrastructure_addresses", mode="before")
    @classmethod
    def _parse_infrastructure(cls, v: object) -> tuple[str, ...]:
        return _parse_address_list(v, name="PLATFORM_INFRASTRUCTURE_ADDRESSES")

    @field_validator("excluded_tokens", mode="before")
    @classmethod
    def _parse_excluded(cls, v: object) -> tuple[str, ...]:
        return _parse_address_list(v, name="PLATFORM_EXCLUDED_TOKENS")

    @field_validator("exchange_contracts", mode="before")
    @classmethod
    def _parse_exchanges(cls, v: object) -> dict[str, str]:
        if isinstance(v, str):
            parsed: dict[str, str] = {}
            for part in (p.strip() for p in v.split(",")):
                if not part:
                    continue
                address, _, label = part.partition("=")
                parsed[address.strip().lower()] = label.strip() or "unknown"
            return parsed
        if isinstance(v, dict):
            return {str(k).lower(): str(val) for k, val in v.items()}
        raise TypeError("Invalid PLATFORM_EXCHANGE_CONTRACTS type")


class RetrySettings(BaseSettings):
    """Backoff policy for filter setup and block subscription recovery."""

    model_config = SettingsConfigDict(env_prefix="RETRY_", extra="ignore")

    max_attempts: int = Field(
        default=5,
        alias="RETRY_MAX_ATTEMPTS",
        ge=1,
        le=100,
        description="Attempts before a transport failure becomes fatal",
    )
    initial_delay_seconds: float = Field(
        default=5.0,
        alias="RETRY_INITIAL_DELAY_SECONDS",
        ge=0,
        le=600,
        description="Delay before the first retry",
    )
    max_delay_seconds: float = Field(
        default=60.0,
        alias="RETRY_MAX_DELAY_SECONDS",
        ge=0,
        le=3600,
        description="Upper bound for the exponential delay",
    )


class RiskSettings(BaseSettings):
    """Thresholds and weights of the token risk rules."""

    model_config = SettingsConfigDict(env_prefix="RISK_", extra="ignore")

    issuer_holding_pct: int = Field(default=50, alias="RISK_ISSUER_HOLDING_PCT", ge=0, le=100)
    issuer_holding_points: int = Field(default=2, alias="RISK_ISSUER_HOLDING_POINTS", ge=0)
    issuer_sell_pct: int = Field(default=10, alias="RISK_ISSUER_SELL_PCT", ge=0, le=100)
    issuer_sell_points: int = Field(default=3, alias="RISK_ISSUER_SELL_POINTS", ge=0)
    sell_buy_ratio: float = Field(default=2.0, alias="RISK_SELL_BUY_RATIO", ge=0)
    sell_buy_ratio_points: int = Field(default=2, alias="RISK_SELL_BUY_RATIO_POINTS", ge=0)
    repeat_transfer_count: int = Field(
        default=3,
        alias="RISK_REPEAT_TRANSFER_COUNT",
        ge=1,
        description="Wallet transfers one address may receive before it is flagged",
    )
    repeat_transfer_points: int = Field(default=1, alias="RISK_REPEAT_TRANSFER_POINTS", ge=0)
    quick_exit_seconds: int = Field(
        default=300,
        alias="RISK_QUICK_EXIT_SECONDS",
        ge=0,
        description="Cross-platform trades sooner than this after the first buy are flagged",
    )
    quick_exit_points: int = Field(default=3, alias="RISK_QUICK_EXIT_POINTS", ge=0)
    high_level_score: int = Field(default=7, alias="RISK_HIGH_LEVEL_SCORE", ge=1)
    medium_level_score: int = Field(default=4, alias="RISK_MEDIUM_LEVEL_SCORE", ge=1)


class ActivitySettings(BaseSettings):
    """Early-activity signal settings."""

    model_config = SettingsConfigDict(env_prefix="ACTIVITY_", extra="ignore")

    enabled: bool = Field(
        default=True,
        alias="ACTIVITY_ENABLED",
        description="Record an early-activity signal for each detected token",
    )
    analysis_delay_blocks: int = Field(
        default=10,
        alias="ACTIVITY_ANALYSIS_DELAY_BLOCKS",
        ge=1,
        le=10_000,
        description="Blocks after creation at which early activity is summarized",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from launchpad_tracker.config import get_settings

        settings = get_settings()
        print(settings.chain.rpc_url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    chain: ChainSettings = Field(
        default_factory=lambda: ChainSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    platform: PlatformSettings = Field(
        default_factory=lambda: PlatformSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    retry: RetrySettings = Field(
        default_factory=lambda: RetrySettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    risk: RiskSettings = Field(
        default_factory=lambda: RiskSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    activity: ActivitySettings = Field(
        default_factory=lambda: ActivitySettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    shutdown_grace_seconds: float = Field(
        default=2.0,
        alias="SHUTDOWN_GRACE_SECONDS",
        ge=0,
        le=60,
        description="Time allowed for flushing state and releasing the filter on shutdown",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url) if self.redis.enabled else "(disabled)",
            "chain": {
                "rpc_url": self.chain.rpc_url,
                "fallback_rpc_url": self.chain.fallback_rpc_url or "(not set)",
                "block_poll_interval_seconds": str(self.chain.block_poll_interval_seconds),
            },
            "platform": {
                "address": self.platform.address,
                "creator_strategy": self.platform.creator_strategy,
                "exchange_contracts": str(len(self.platform.exchange_contracts)),
                "total_supply": str(self.platform.total_supply or "(observed mint)"),
            },
            "retry": {
                "max_attempts": str(self.retry.max_attempts),
                "max_delay_seconds": str(self.retry.max_delay_seconds),
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()

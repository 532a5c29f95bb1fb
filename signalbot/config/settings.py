"""Application settings and configuration management."""

from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

logger = structlog.get_logger(__name__)


class StrategyConfig(BaseModel):
    """Thresholds and sizing parameters; read-only after startup."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Institutional filters
    min_liquidity_usd: float = Field(default=15000.0, ge=0)
    max_spread: float = Field(default=0.025, ge=0, le=1)
    max_price_impact: float = Field(default=0.03, ge=0, le=1)

    # Order flow and metrics
    min_delta_buy: float = Field(default=2.0, ge=0)
    min_buyers_zscore: float = Field(default=2.0)
    min_whale_count: int = Field(default=2, ge=0)
    whale_threshold_usd: float = Field(default=1000.0, ge=0)
    order_flow_fetch_limit: int = Field(default=100, ge=1, le=1000)
    order_flow_window: int = Field(default=20, ge=1)

    # Exit plan
    stop_loss: float = Field(default=0.12, gt=0, lt=1)
    take_profits: tuple[float, ...] = Field(default=(0.25, 0.60, 1.60))
    trailing_stop_cap: float = Field(default=0.25, ge=0, le=1)
    time_stop_seconds: int = Field(default=120, ge=0)

    # Sizing
    max_position_pct: float = Field(default=0.007, ge=0, le=1)
    max_liquidity_fraction: float = Field(default=0.02, ge=0, le=1)
    min_position_usd: float = Field(default=150.0, ge=0)
    equity_usd: float = Field(default=10000.0, ge=0)

    # Resolution
    buy_confidence_threshold: int = Field(default=7, ge=0, le=10)
    notify_confidence_threshold: int = Field(default=7, ge=0, le=10)
    eligibility_signal_strength: float = Field(default=7.5, ge=0, le=10)
    watch_signal_strength: int = Field(default=5, ge=0, le=10)

    # Snapshot estimates
    reference_trade_usd: float = Field(default=150.0, gt=0)
    pool_fee_rate: float = Field(default=0.0025, ge=0, lt=1)

    # Scanner pre-filter
    min_holders: int = Field(default=50, ge=0)
    max_risk_score: int = Field(default=60, ge=0, le=100)

    @field_validator("take_profits")
    @classmethod
    def _ladder_increasing(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        if not v:
            raise ValueError("take_profits must not be empty")
        if any(level <= 0 for level in v):
            raise ValueError("take_profits levels must be positive")
        if any(b <= a for a, b in zip(v, v[1:], strict=False)):
            raise ValueError("take_profits must be strictly increasing")
        return v


class AppSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Environment and mode
    env: Literal["dev", "paper", "prod"] = Field(
        description="Environment: dev, paper, prod"
    )
    paper_trading: bool = Field(
        default=True, description="Paper mode (decisions are advisory only)"
    )

    # Solana and market data
    rpc_url: str = Field(description="Solana RPC URL")
    dexscreener_base: str = Field(
        default="https://api.dexscreener.com",
        description="DexScreener API base URL",
    )
    jupiter_base: str = Field(
        default="https://lite-api.jup.ag", description="Jupiter API base URL"
    )

    # Continuous new-pair feed
    streaming_url: str = Field(
        default="wss://api.solanastreaming.com/", description="New pair feed URL"
    )
    streaming_api_key: str | None = Field(
        default=None, description="New pair feed API key (feed disabled if unset)"
    )
    reconnect_delay_seconds: float = Field(default=5.0, ge=0)

    # Advisory service
    advisory_endpoint: str = Field(description="Azure OpenAI endpoint URL")
    advisory_api_key: str = Field(description="Azure OpenAI API key")
    advisory_deployment: str = Field(description="Azure OpenAI deployment name")
    advisory_api_version: str = Field(default="2024-02-15-preview")
    advisory_timeout_seconds: float = Field(default=60.0, gt=0)

    # Scanner
    scanner_enabled: bool = Field(default=True)
    scanner_interval_seconds: float = Field(default=30.0, gt=0)
    scanner_backoff_seconds: float = Field(default=5.0, ge=0)

    # Notifications
    telegram_bot_token: str | None = Field(
        default=None, description="Telegram bot token"
    )
    telegram_admin_ids: list[int] = Field(
        default_factory=list, description="Telegram admin user IDs"
    )
    telegram_mode: Literal["polling", "webhook"] = Field(default="polling")
    telegram_webhook_url: str | None = Field(
        default=None, description="Public URL Telegram posts updates to"
    )
    telegram_webhook_secret: str | None = Field(
        default=None, description="Expected X-Telegram-Bot-Api-Secret-Token header"
    )

    # Data storage
    database_url: str = Field(
        default="sqlite+aiosqlite:///./decisions.sqlite",
        description="Database connection URL",
    )

    # Process
    health_port: int = Field(default=8080, ge=0, description="0 disables /health")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    strategy: StrategyConfig = Field(default_factory=StrategyConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @property
    def database_path(self) -> str:
        return self.database_url.replace("sqlite+aiosqlite:///", "")

    @property
    def telegram_webhook_enabled(self) -> bool:
        return self.telegram_mode == "webhook" and bool(self.telegram_webhook_url)


def load_settings(profile: str, yaml_path: str) -> AppSettings:
    """Load settings from YAML file and environment variables.

    Args:
        profile: Configuration profile name (dev, paper, prod)
        yaml_path: Path to YAML configuration file

    Returns:
        AppSettings instance with loaded configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValidationError: If configuration is invalid
        ValueError: If profile is invalid
    """
    if profile not in ["dev", "paper", "prod"]:
        raise ValueError(
            f"Invalid profile: {profile}. Must be one of: dev, paper, prod"
        )

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        yaml_config["env"] = profile

        # dev keeps whatever the YAML says
        if profile == "paper":
            yaml_config["paper_trading"] = True
        elif profile == "prod":
            yaml_config["paper_trading"] = False

        logger.info("Loading configuration", profile=profile, yaml_path=yaml_path)

        settings = AppSettings(**yaml_config)

        logger.info(
            "Configuration loaded successfully",
            profile=profile,
            paper_trading=settings.paper_trading,
            rpc_url=settings.rpc_url[:50] + "..."
            if len(settings.rpc_url) > 50
            else settings.rpc_url,
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", error=str(e))
        raise ValueError(f"Invalid YAML configuration: {e}") from e
    except ValidationError as e:
        logger.error("Configuration validation failed", error=str(e))
        raise

"""Core data types for the decision pipeline."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DecisionAction(str, Enum):
    """Terminal verdict of one analysis."""

    BUY = "BUY"
    WATCH = "WATCH"
    HOLD = "HOLD"
    SKIP = "SKIP"
    REJECT = "REJECT"
    ERROR = "ERROR"


class AdvisoryAction(str, Enum):
    """Action suggested by the advisory service."""

    BUY = "BUY"
    HOLD = "HOLD"
    SKIP = "SKIP"
    ERROR = "ERROR"


class TradeSide(str, Enum):
    """Direction of a transaction relative to the analysed asset."""

    BUY = "BUY"
    SELL = "SELL"


class PipelineStage(str, Enum):
    """States of the decision resolver."""

    INIT = "INIT"
    DATA_FETCHED = "DATA_FETCHED"
    FILTER_EVALUATED = "FILTER_EVALUATED"
    METRICS_COMPUTED = "METRICS_COMPUTED"
    ADVISED = "ADVISED"
    RESOLVED = "RESOLVED"


class FilterReason(str, Enum):
    """First failing institutional filter."""

    LIQUIDITY = "liquidity"
    PRICE_IMPACT = "price_impact"
    SPREAD = "spread"
    AUTHORITY_RISK = "authority_risk"


class AssetSnapshot(BaseModel):
    """Spot price and liquidity snapshot for one asset."""

    model_config = ConfigDict(frozen=True)

    identifier: str = Field(description="Token mint address")
    symbol: str | None = Field(default=None, description="Ticker symbol")
    pool_address: str | None = Field(default=None, description="Most liquid pool")
    price_usd: float = Field(ge=0, description="Current price in USD")
    price_change_24h: float = Field(default=0.0, description="24h price change %")
    liquidity_usd: float = Field(ge=0, description="Pool liquidity in USD")
    spread: float = Field(ge=0, description="Estimated round-trip spread (fraction)")
    price_impact: float = Field(ge=0, description="Estimated price impact (fraction)")
    source: str = Field(default="unknown", description="Data source identifier")
    ts: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Snapshot timestamp"
    )


class AuthorityRisk(BaseModel):
    """Mint and freeze authority state of a token (None when unknown)."""

    model_config = ConfigDict(frozen=True)

    mint_authority_active: bool | None = None
    freeze_authority_active: bool | None = None

    @property
    def active(self) -> bool:
        """True when either authority is known to be active."""
        return bool(self.mint_authority_active) or bool(self.freeze_authority_active)


class OrderFlowWindow(BaseModel):
    """Aggregated order flow over the most recent transactions of one asset."""

    model_config = ConfigDict(frozen=True)

    buy_volume: float = Field(default=0.0, ge=0)
    sell_volume: float = Field(default=0.0, ge=0)
    unique_buyers: int = Field(default=0, ge=0)
    unique_sellers: int = Field(default=0, ge=0)
    whale_volumes: tuple[float, ...] = Field(default=())
    transactions_counted: int = Field(default=0, ge=0)
    transactions_skipped: int = Field(default=0, ge=0)

    @property
    def total_volume(self) -> float:
        return self.buy_volume + self.sell_volume


class QuantMetrics(BaseModel):
    """Dimensionless scores derived from an order-flow window."""

    model_config = ConfigDict(frozen=True)

    delta_buy: float = Field(ge=0, description="buy volume / max(1, sell volume)")
    buyers_z: float = Field(description="Unique-buyer z-score against baseline")
    whale_count: int = Field(ge=0)
    whales_ok: bool
    flow_ok: bool
    signal_strength: int = Field(ge=0, le=10)


class FilterResult(BaseModel):
    """Outcome of the institutional filter gate."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    reason: FilterReason | None = None
    detail: str = ""


class AdvisoryJudgment(BaseModel):
    """Validated judgment from the advisory service."""

    model_config = ConfigDict(frozen=True)

    action: AdvisoryAction
    confidence: int = Field(ge=0, le=10)
    reasoning: str = ""
    position_size_usd: float = Field(default=0.0, ge=0)


class ExitPlan(BaseModel):
    """Suggested exit levels for a BUY verdict."""

    model_config = ConfigDict(frozen=True)

    entry_price_usd: float
    stop_loss_price_usd: float
    take_profit_prices_usd: tuple[float, ...]
    trailing_stop_cap: float
    time_stop_seconds: int


class Decision(BaseModel):
    """Immutable terminal record of one analysis invocation."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    action: DecisionAction
    confidence: int = Field(ge=0, le=10)
    reasoning: str
    position_size_usd: float = Field(default=0.0, ge=0)
    forced: bool = False
    stage: PipelineStage = Field(
        default=PipelineStage.INIT,
        description="Last stage completed before resolution",
    )
    snapshot: AssetSnapshot | None = None
    order_flow: OrderFlowWindow | None = None
    filter_result: FilterResult | None = None
    metrics: QuantMetrics | None = None
    advisory: AdvisoryJudgment | None = None
    exit_plan: ExitPlan | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def record_key(self) -> str:
        """Durable store key: ``{identifier}_{epoch milliseconds}``."""
        return f"{self.identifier}_{int(self.created_at.timestamp() * 1000)}"


class MigrationCandidate(BaseModel):
    """Newly listed token surfaced by the discovery scanner."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    symbol: str | None = None
    name: str | None = None
    liquidity_usd: float = 0.0
    market_cap_usd: float | None = None
    holder_count: int | None = None
    risk_score: int = Field(default=0, ge=0, le=100)
    authority: AuthorityRisk = Field(default_factory=AuthorityRisk)
    discovered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

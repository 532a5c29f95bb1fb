"""Position sizing and exit levels for BUY verdicts."""

import structlog

from ..config.settings import StrategyConfig
from ..core.types import AssetSnapshot, ExitPlan

logger = structlog.get_logger(__name__)


def position_size_usd(snap: AssetSnapshot, config: StrategyConfig) -> float:
    """Calculate position size in USD for a token.

    Args:
        snap: Asset snapshot with liquidity data
        config: Strategy configuration

    Returns:
        min(equity cap, liquidity-scaled cap), floored at the minimum position
    """
    equity_cap = config.equity_usd * config.max_position_pct
    liquidity_cap = snap.liquidity_usd * config.max_liquidity_fraction

    size = max(min(equity_cap, liquidity_cap), config.min_position_usd)

    logger.debug(
        "Position sized",
        identifier=snap.identifier,
        equity_cap=equity_cap,
        liquidity_cap=liquidity_cap,
        size_usd=size,
    )
    return size


def build_exit_plan(snap: AssetSnapshot, config: StrategyConfig) -> ExitPlan:
    """Derive stop-loss and take-profit prices from the entry price."""
    entry = snap.price_usd
    return ExitPlan(
        entry_price_usd=entry,
        stop_loss_price_usd=entry * (1 - config.stop_loss),
        take_profit_prices_usd=tuple(entry * (1 + tp) for tp in config.take_profits),
        trailing_stop_cap=config.trailing_stop_cap,
        time_stop_seconds=config.time_stop_seconds,
    )

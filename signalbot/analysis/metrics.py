"""Quantitative metrics derived from order flow."""

from ..config.settings import StrategyConfig
from ..core.types import OrderFlowWindow, QuantMetrics

# Static reference distribution for unique buyers per window
BUYERS_BASELINE_MEAN = 20.0
BUYERS_BASELINE_STD = 8.0

MAX_SIGNAL_STRENGTH = 10


def signal_strength(delta_buy: float, buyers_z: float, whale_count: int) -> int:
    """Additive 0-10 score.

    The two delta_buy bands are independent, so a delta_buy of 3.0 or more
    scores both.
    """
    score = 0
    if delta_buy >= 2.0:
        score += 3
    if buyers_z >= 2.0:
        score += 2
    if whale_count >= 2:
        score += 3
    if delta_buy >= 3.0:
        score += 2
    return max(0, min(MAX_SIGNAL_STRENGTH, score))


def compute_metrics(window: OrderFlowWindow, config: StrategyConfig) -> QuantMetrics:
    """Pure function of the order-flow window and thresholds."""
    delta_buy = window.buy_volume / max(1.0, window.sell_volume)
    buyers_z = (window.unique_buyers - BUYERS_BASELINE_MEAN) / BUYERS_BASELINE_STD
    whale_count = len(window.whale_volumes)

    return QuantMetrics(
        delta_buy=delta_buy,
        buyers_z=buyers_z,
        whale_count=whale_count,
        whales_ok=whale_count >= config.min_whale_count,
        flow_ok=delta_buy >= config.min_delta_buy
        and buyers_z >= config.min_buyers_zscore,
        signal_strength=signal_strength(delta_buy, buyers_z, whale_count),
    )

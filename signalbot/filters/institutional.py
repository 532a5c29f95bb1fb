"""Institutional filter gate."""

import structlog

from ..config.settings import StrategyConfig
from ..core.types import AssetSnapshot, AuthorityRisk, FilterReason, FilterResult

logger = structlog.get_logger(__name__)


class InstitutionalFilter:
    """Boolean gate over liquidity, price impact, spread and authority risk.

    Checks run in that order and stop at the first failure.
    """

    def __init__(self, config: StrategyConfig) -> None:
        """Initialize institutional filter."""
        self.min_liquidity_usd = config.min_liquidity_usd
        self.max_price_impact = config.max_price_impact
        self.max_spread = config.max_spread

    def evaluate(
        self, snap: AssetSnapshot, authority: AuthorityRisk | None = None
    ) -> FilterResult:
        """Evaluate an asset snapshot against the configured thresholds."""
        result = self._evaluate(snap, authority or AuthorityRisk())

        logger.debug(
            "Institutional filter evaluation",
            identifier=snap.identifier,
            passed=result.passed,
            reason=result.reason.value if result.reason else None,
            detail=result.detail,
        )
        return result

    def _evaluate(self, snap: AssetSnapshot, authority: AuthorityRisk) -> FilterResult:
        if snap.liquidity_usd < self.min_liquidity_usd:
            return FilterResult(
                passed=False,
                reason=FilterReason.LIQUIDITY,
                detail=f"Liquidity too low: ${snap.liquidity_usd:.2f} "
                f"< ${self.min_liquidity_usd:.2f}",
            )

        if snap.price_impact > self.max_price_impact:
            return FilterResult(
                passed=False,
                reason=FilterReason.PRICE_IMPACT,
                detail=f"Price impact too high: {snap.price_impact:.2%} "
                f"> {self.max_price_impact:.2%}",
            )

        if snap.spread > self.max_spread:
            return FilterResult(
                passed=False,
                reason=FilterReason.SPREAD,
                detail=f"Spread too wide: {snap.spread:.2%} > {self.max_spread:.2%}",
            )

        if authority.active:
            active = [
                name
                for name, flag in (
                    ("mint", authority.mint_authority_active),
                    ("freeze", authority.freeze_authority_active),
                )
                if flag
            ]
            return FilterResult(
                passed=False,
                reason=FilterReason.AUTHORITY_RISK,
                detail=f"Active {' and '.join(active)} authority",
            )

        return FilterResult(passed=True, detail="Passed institutional filters")

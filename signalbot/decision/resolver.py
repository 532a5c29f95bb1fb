"""Decision resolver: drives one analysis from identifier to Decision.

States advance INIT -> DATA_FETCHED -> FILTER_EVALUATED -> METRICS_COMPUTED
-> ADVISED -> RESOLVED. Missing data exits early with SKIP, any other
failure with ERROR; every path produces exactly one Decision.
"""

from dataclasses import dataclass

import structlog

from ..analysis.metrics import compute_metrics
from ..analysis.order_flow import OrderFlowAggregator
from ..config.settings import StrategyConfig
from ..core.errors import DataUnavailable
from ..core.interfaces import Advisor, MarketDataSource
from ..core.types import (
    AdvisoryAction,
    AdvisoryJudgment,
    AssetSnapshot,
    Decision,
    DecisionAction,
    ExitPlan,
    FilterReason,
    FilterResult,
    OrderFlowWindow,
    PipelineStage,
    QuantMetrics,
)
from ..filters.institutional import InstitutionalFilter
from ..risk.sizing import build_exit_plan, position_size_usd

logger = structlog.get_logger(__name__)


def is_entry_eligible(metrics: QuantMetrics, strength_threshold: float = 7.5) -> bool:
    """``(flow_ok AND whales_ok) OR signal_strength > threshold``."""
    return (metrics.flow_ok and metrics.whales_ok) or (
        metrics.signal_strength > strength_threshold
    )


@dataclass
class _Analysis:
    """Working state owned by a single analysis invocation."""

    identifier: str
    forced: bool
    stage: PipelineStage = PipelineStage.INIT
    snapshot: AssetSnapshot | None = None
    order_flow: OrderFlowWindow | None = None
    filter_result: FilterResult | None = None
    metrics: QuantMetrics | None = None
    advisory: AdvisoryJudgment | None = None

    def advance(self, stage: PipelineStage) -> None:
        logger.debug(
            "Analysis stage reached", identifier=self.identifier, stage=stage.value
        )
        self.stage = stage

    def finish(
        self,
        action: DecisionAction,
        confidence: int,
        reasoning: str,
        position_size_usd: float = 0.0,
        exit_plan: ExitPlan | None = None,
    ) -> Decision:
        return Decision(
            identifier=self.identifier,
            action=action,
            confidence=max(0, min(10, confidence)),
            reasoning=reasoning,
            position_size_usd=position_size_usd,
            forced=self.forced,
            stage=self.stage,
            snapshot=self.snapshot,
            order_flow=self.order_flow,
            filter_result=self.filter_result,
            metrics=self.metrics,
            advisory=self.advisory,
            exit_plan=exit_plan,
        )


class DecisionResolver:
    """Combines filter result, metrics and advisory judgment into a Decision."""

    def __init__(
        self,
        market: MarketDataSource,
        advisor: Advisor,
        config: StrategyConfig,
    ) -> None:
        """Initialize decision resolver.

        Args:
            market: Market data source for snapshots, transactions, authorities
            advisor: Advisory judgment provider
            config: Strategy configuration
        """
        self.market = market
        self.advisor = advisor
        self.config = config
        self.aggregator = OrderFlowAggregator(market, config)
        self.filter = InstitutionalFilter(config)

    async def run(self, identifier: str, forced: bool = False) -> Decision:
        """Analyse one asset. Never raises.

        Args:
            identifier: Token mint address
            forced: Bypass the filter gate (operator inspection)

        Returns:
            The terminal Decision for this invocation
        """
        analysis = _Analysis(identifier=identifier, forced=forced)

        try:
            decision = await self._run(analysis)
        except DataUnavailable as e:
            logger.info(
                "Market data unavailable", identifier=identifier, error=e.message
            )
            decision = analysis.finish(
                DecisionAction.SKIP, 0, f"Data unavailable: {e.message}"
            )
        except Exception as e:
            logger.error(
                "Analysis failed",
                identifier=identifier,
                stage=analysis.stage.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            decision = analysis.finish(
                DecisionAction.ERROR, 0, f"{type(e).__name__}: {e}"
            )

        logger.info(
            "Analysis resolved",
            identifier=identifier,
            action=decision.action.value,
            confidence=decision.confidence,
            position_size_usd=decision.position_size_usd,
            stage=decision.stage.value,
            forced=forced,
        )
        return decision

    async def _run(self, analysis: _Analysis) -> Decision:
        identifier = analysis.identifier

        snapshot = await self.market.snapshot(identifier)
        if snapshot is None:
            raise DataUnavailable("No market snapshot", details={"identifier": identifier})
        analysis.snapshot = snapshot

        authority = await self.market.authority_risk(identifier)
        analysis.order_flow = await self.aggregator.collect(snapshot)
        analysis.advance(PipelineStage.DATA_FETCHED)

        analysis.filter_result = self.filter.evaluate(snapshot, authority)
        analysis.advance(PipelineStage.FILTER_EVALUATED)

        if not analysis.filter_result.passed:
            reason = analysis.filter_result.reason
            if not analysis.forced:
                action = (
                    DecisionAction.REJECT
                    if reason is FilterReason.AUTHORITY_RISK
                    else DecisionAction.SKIP
                )
                return analysis.finish(
                    action,
                    0,
                    f"Filter failed ({reason.value}): {analysis.filter_result.detail}",
                )
            logger.info(
                "Forced analysis bypassing failed filter",
                identifier=identifier,
                reason=reason.value,
            )

        analysis.metrics = compute_metrics(analysis.order_flow, self.config)
        analysis.advance(PipelineStage.METRICS_COMPUTED)

        analysis.advisory = await self.advisor.advise(analysis.metrics, snapshot)
        analysis.advance(PipelineStage.ADVISED)

        return self._resolve(analysis)

    def _resolve(self, analysis: _Analysis) -> Decision:
        metrics = analysis.metrics
        judgment = analysis.advisory
        snapshot = analysis.snapshot

        if judgment.action is AdvisoryAction.ERROR:
            return analysis.finish(DecisionAction.ERROR, 0, judgment.reasoning)

        eligible = is_entry_eligible(metrics, self.config.eligibility_signal_strength)
        advisory_buy = (
            judgment.action is AdvisoryAction.BUY
            and judgment.confidence > self.config.buy_confidence_threshold
        )
        summary = (
            f"delta_buy={metrics.delta_buy:.2f}, buyers_z={metrics.buyers_z:.2f}, "
            f"whales={metrics.whale_count}, strength={metrics.signal_strength}/10"
        )
        advice = (
            f"Advisory {judgment.action.value} ({judgment.confidence}/10): "
            f"{judgment.reasoning}"
        )

        if eligible or advisory_buy:
            advisory_confidence = (
                judgment.confidence if judgment.action is AdvisoryAction.BUY else 0
            )
            confidence = max(1, metrics.signal_strength, advisory_confidence)
            basis = "Entry rule met" if eligible else "Advisory BUY above threshold"
            return analysis.finish(
                DecisionAction.BUY,
                confidence,
                f"{basis}: {summary}. {advice}",
                position_size_usd=position_size_usd(snapshot, self.config),
                exit_plan=build_exit_plan(snapshot, self.config),
            )

        if metrics.signal_strength >= self.config.watch_signal_strength:
            action = DecisionAction.WATCH
        else:
            action = DecisionAction.HOLD

        return analysis.finish(
            action,
            judgment.confidence,
            f"Entry rule not met: {summary}. {advice}",
        )

"""Pre-filter for scanner discoveries."""

import structlog

from ..config.settings import StrategyConfig
from ..core.types import MigrationCandidate

logger = structlog.get_logger(__name__)


class CandidateFilter:
    """Cheap gate applied before a discovery enters the full pipeline."""

    def __init__(self, config: StrategyConfig) -> None:
        """Initialize candidate filter."""
        self.min_liquidity_usd = config.min_liquidity_usd
        self.min_holders = config.min_holders
        self.max_risk_score = config.max_risk_score

    def evaluate(self, candidate: MigrationCandidate) -> tuple[bool, list[str]]:
        """Return (accepted, reasons) for a discovered candidate."""
        reasons = []

        if candidate.liquidity_usd < self.min_liquidity_usd:
            reasons.append(
                f"Liquidity too low: ${candidate.liquidity_usd:.2f} "
                f"< ${self.min_liquidity_usd:.2f}"
            )

        if candidate.holder_count is not None:
            if candidate.holder_count < self.min_holders:
                reasons.append(
                    f"Too few holders: {candidate.holder_count} < {self.min_holders}"
                )
        else:
            reasons.append("Holder count unknown")

        if candidate.risk_score > self.max_risk_score:
            reasons.append(
                f"Risk score too high: {candidate.risk_score} > {self.max_risk_score}"
            )

        if candidate.authority.active:
            reasons.append("Active mint or freeze authority")

        accepted = not reasons

        logger.debug(
            "Candidate pre-filter evaluation",
            identifier=candidate.identifier,
            accepted=accepted,
            reasons=reasons,
        )
        return accepted, reasons

"""Advisory arbitration: prompt the advisory service and validate its answer."""

import json
import re
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config.settings import StrategyConfig
from ..core.errors import AdvisoryMalformed, AdvisoryUnreachable
from ..core.interfaces import Advisor, CompletionService
from ..core.types import AdvisoryAction, AdvisoryJudgment, AssetSnapshot, QuantMetrics

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an institutional trading analyst reviewing newly listed Solana "
    "tokens. You receive order-flow metrics, market data and the desk's risk "
    "thresholds as JSON. Decide whether to BUY, HOLD or SKIP. Respond with a "
    "single JSON object and nothing else, using exactly these keys: "
    '"action" ("BUY", "HOLD" or "SKIP"), "confidence" (integer 1-10), '
    '"reasoning" (one short paragraph), "position_size_usd" (number >= 0).'
)

FALLBACK_REASONING = "parsing error"
FALLBACK_CONFIDENCE = 5

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class AdvisoryResponse(BaseModel):
    """Wire schema the advisory service must satisfy."""

    model_config = ConfigDict(extra="ignore")

    action: Literal["BUY", "HOLD", "SKIP"]
    confidence: int = Field(ge=1, le=10)
    reasoning: str = ""
    position_size_usd: float = Field(default=0.0, ge=0)

    @field_validator("action", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v


def parse_judgment(text: str) -> AdvisoryJudgment:
    """Parse untrusted advisory text into a judgment.

    Raises:
        AdvisoryMalformed: If the text is not a JSON object matching the schema
    """
    body = (text or "").strip()
    fenced = _FENCE_RE.match(body)
    if fenced:
        body = fenced.group(1)

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise AdvisoryMalformed(
            f"Advisory response is not JSON: {e}", details={"text": body[:200]}
        ) from e

    if not isinstance(data, dict):
        raise AdvisoryMalformed(
            "Advisory response is not a JSON object",
            details={"type": type(data).__name__},
        )

    try:
        response = AdvisoryResponse.model_validate(data)
    except ValidationError as e:
        raise AdvisoryMalformed(
            "Advisory response failed schema validation",
            details={"errors": e.errors(include_url=False)},
        ) from e

    return AdvisoryJudgment(
        action=AdvisoryAction(response.action),
        confidence=response.confidence,
        reasoning=response.reasoning,
        position_size_usd=response.position_size_usd,
    )


def build_prompt(
    metrics: QuantMetrics, snapshot: AssetSnapshot | None, config: StrategyConfig
) -> str:
    """Serialize metrics, market data and thresholds as the user payload."""
    payload: dict[str, Any] = {"metrics": metrics.model_dump()}

    if snapshot is not None:
        payload["market"] = {
            "identifier": snapshot.identifier,
            "symbol": snapshot.symbol,
            "price_usd": snapshot.price_usd,
            "price_change_24h": snapshot.price_change_24h,
            "liquidity_usd": snapshot.liquidity_usd,
            "spread": snapshot.spread,
            "price_impact": snapshot.price_impact,
        }

    payload["thresholds"] = {
        "min_liquidity_usd": config.min_liquidity_usd,
        "max_spread": config.max_spread,
        "max_price_impact": config.max_price_impact,
        "min_delta_buy": config.min_delta_buy,
        "min_buyers_zscore": config.min_buyers_zscore,
        "min_whale_count": config.min_whale_count,
        "stop_loss": config.stop_loss,
        "take_profits": list(config.take_profits),
        "max_position_pct": config.max_position_pct,
        "min_position_usd": config.min_position_usd,
        "equity_usd": config.equity_usd,
    }
    return json.dumps(payload, default=str)


class AdvisoryArbitrationClient(Advisor):
    """Advisor backed by an external completion service."""

    def __init__(self, service: CompletionService, config: StrategyConfig) -> None:
        """Initialize advisory client.

        Args:
            service: Completion backend (swappable; faked in tests)
            config: Strategy configuration
        """
        self.service = service
        self.config = config

    def fallback(self) -> AdvisoryJudgment:
        """Conservative judgment used when the response can't be trusted."""
        return AdvisoryJudgment(
            action=AdvisoryAction.HOLD,
            confidence=FALLBACK_CONFIDENCE,
            reasoning=FALLBACK_REASONING,
            position_size_usd=self.config.min_position_usd,
        )

    async def advise(
        self, metrics: QuantMetrics, snapshot: AssetSnapshot | None = None
    ) -> AdvisoryJudgment:
        """Ask the advisory service for a judgment. Never raises, never retries."""
        identifier = snapshot.identifier if snapshot else None
        prompt = build_prompt(metrics, snapshot, self.config)

        try:
            text = await self.service.complete(SYSTEM_PROMPT, prompt)
        except AdvisoryUnreachable as e:
            logger.error(
                "Advisory service unreachable", identifier=identifier, error=str(e)
            )
            return AdvisoryJudgment(
                action=AdvisoryAction.ERROR,
                confidence=0,
                reasoning=f"advisory unavailable: {e.message}",
            )
        except Exception as e:
            logger.error(
                "Advisory call failed",
                identifier=identifier,
                error=str(e),
                error_type=type(e).__name__,
            )
            return AdvisoryJudgment(
                action=AdvisoryAction.ERROR,
                confidence=0,
                reasoning=f"advisory unavailable: {e}",
            )

        try:
            judgment = parse_judgment(text)
        except AdvisoryMalformed as e:
            logger.warning(
                "Malformed advisory response, using fallback",
                identifier=identifier,
                error=e.message,
            )
            return self.fallback()

        logger.info(
            "Advisory judgment received",
            identifier=identifier,
            action=judgment.action.value,
            confidence=judgment.confidence,
        )
        return judgment

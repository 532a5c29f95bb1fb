"""Jupiter Token API V2 discovery of newly listed tokens."""

from typing import Any

import httpx
import structlog

from ..core.interfaces import DiscoverySource
from ..core.retry import RetryPolicy
from ..core.types import AuthorityRisk, MigrationCandidate

logger = structlog.get_logger(__name__)

AUTHORITY_RISK_POINTS = 35
MAX_CONCENTRATION_POINTS = 30


def _flag_active(disabled: Any) -> bool | None:
    """Jupiter reports ``*AuthorityDisabled``; invert it, keep unknown as None."""
    if isinstance(disabled, bool):
        return not disabled
    return None


def risk_score(authority: AuthorityRisk, top_holders_pct: float | None) -> int:
    """0-100 rug-risk score from authorities and holder concentration."""
    score = 0
    if authority.mint_authority_active:
        score += AUTHORITY_RISK_POINTS
    if authority.freeze_authority_active:
        score += AUTHORITY_RISK_POINTS
    if top_holders_pct is not None:
        pct = max(0.0, min(100.0, top_holders_pct))
        score += round(pct * MAX_CONCENTRATION_POINTS / 100)
    return min(100, score)


def map_jupiter_token_to_candidate(item: dict[str, Any]) -> MigrationCandidate | None:
    """Map one Token API V2 entry to a MigrationCandidate."""
    mint = item.get("id")
    if not isinstance(mint, str) or not mint:
        return None

    audit = item.get("audit") or {}
    authority = AuthorityRisk(
        mint_authority_active=_flag_active(audit.get("mintAuthorityDisabled")),
        freeze_authority_active=_flag_active(audit.get("freezeAuthorityDisabled")),
    )
    top_pct = audit.get("topHoldersPercentage")
    top_pct = float(top_pct) if isinstance(top_pct, (int, float)) else None

    holders = item.get("holderCount")
    mcap = item.get("mcap")

    return MigrationCandidate(
        identifier=mint,
        symbol=item.get("symbol"),
        name=item.get("name"),
        liquidity_usd=float(item.get("liquidity") or 0.0),
        market_cap_usd=float(mcap) if isinstance(mcap, (int, float)) else None,
        holder_count=int(holders) if isinstance(holders, (int, float)) else None,
        risk_score=risk_score(authority, top_pct),
        authority=authority,
    )


class JupiterDiscovery(DiscoverySource):
    """Discovers recently listed tokens via ``/tokens/v2/recent``."""

    def __init__(
        self,
        base_url: str = "https://lite-api.jup.ag",
        session: httpx.AsyncClient | None = None,
        limit: int = 30,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.limit = max(1, min(100, int(limit)))
        self.retry_policy = retry_policy or RetryPolicy.http()

        # Prefer an injected AsyncClient; fall back to own client if not provided.
        self._session = session or httpx.AsyncClient(
            timeout=20.0,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )
        self._owns_session = session is None

    async def close(self) -> None:
        if self._owns_session:
            await self._session.aclose()

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        async for attempt in self.retry_policy.retrying():
            with attempt:
                r = await self._session.get(url, params=params)
                r.raise_for_status()
                return r.json()

    async def discover(self) -> list[MigrationCandidate]:
        """Fetch recent tokens and map them to candidates.

        Raises:
            httpx.HTTPError: When the request fails; the scanner backs off
        """
        items = await self._get_json("/tokens/v2/recent")
        if not isinstance(items, list):
            logger.warning("Unexpected Jupiter response (expected list)")
            return []

        candidates: list[MigrationCandidate] = []
        for item in items[: self.limit]:
            if not isinstance(item, dict):
                continue
            try:
                candidate = map_jupiter_token_to_candidate(item)
            except (TypeError, ValueError) as e:
                logger.warning(
                    "Failed to map Jupiter item", mint=item.get("id"), error=str(e)
                )
                continue
            if candidate:
                candidates.append(candidate)

        logger.info("Polled Jupiter recent tokens", count=len(candidates))
        return candidates

"""DexScreener lookup for price and liquidity snapshots."""

import time
from collections import OrderedDict
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from ..core.retry import RetryPolicy
from ..core.types import AssetSnapshot

logger = structlog.get_logger(__name__)


class TTLCache:
    """Small LRU cache whose entries expire after ``ttl`` seconds."""

    def __init__(self, maxsize: int = 1000, ttl: float = 15.0) -> None:
        self.maxsize = maxsize
        self.ttl = ttl
        self._items: OrderedDict[str, tuple[Any, float]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        item = self._items.get(key)
        if item is None:
            return None
        value, stored_at = item
        if time.monotonic() - stored_at > self.ttl:
            del self._items[key]
            return None
        self._items.move_to_end(key)
        return value

    def set(self, key: str, value: Any) -> None:
        self._items[key] = (value, time.monotonic())
        self._items.move_to_end(key)
        while len(self._items) > self.maxsize:
            self._items.popitem(last=False)


def estimate_price_impact(liquidity_usd: float, trade_usd: float) -> float:
    """Constant-product impact of buying ``trade_usd`` against the quote side.

    The quote reserve is approximated as half the pool's USD liquidity.
    """
    quote_reserve = liquidity_usd / 2
    if quote_reserve <= 0:
        return 1.0
    return trade_usd / (quote_reserve + trade_usd)


def estimate_spread(liquidity_usd: float, trade_usd: float, fee_rate: float) -> float:
    """Round-trip cost: pool fee on both legs plus the entry impact."""
    return 2 * fee_rate + estimate_price_impact(liquidity_usd, trade_usd)


def map_dexscreener_pairs_to_snapshot(
    mint: str,
    pairs: list[dict[str, Any]],
    trade_usd: float,
    fee_rate: float,
    source: str = "dexscreener",
) -> AssetSnapshot | None:
    """Map the most liquid DexScreener pair for ``mint`` to an AssetSnapshot.

    Args:
        mint: Token mint address
        pairs: ``pairs`` array of the DexScreener tokens endpoint
        trade_usd: Reference trade size for spread/impact estimates
        fee_rate: Pool fee rate per leg
        source: Data source identifier

    Returns:
        AssetSnapshot, or None if no pair lists ``mint`` as base token
    """
    candidates = [
        p
        for p in pairs
        if isinstance(p, dict) and (p.get("baseToken") or {}).get("address") == mint
    ]
    if not candidates:
        return None

    def _liquidity(pair: dict[str, Any]) -> float:
        return float((pair.get("liquidity") or {}).get("usd") or 0.0)

    pair = max(candidates, key=_liquidity)
    liquidity_usd = _liquidity(pair)

    return AssetSnapshot(
        identifier=mint,
        symbol=(pair.get("baseToken") or {}).get("symbol"),
        pool_address=pair.get("pairAddress"),
        price_usd=float(pair.get("priceUsd") or 0.0),
        price_change_24h=float((pair.get("priceChange") or {}).get("h24") or 0.0),
        liquidity_usd=liquidity_usd,
        spread=estimate_spread(liquidity_usd, trade_usd, fee_rate),
        price_impact=estimate_price_impact(liquidity_usd, trade_usd),
        source=f"{source}:{pair.get('dexId', 'unknown')}",
        ts=datetime.now(UTC),
    )


class DexScreenerLookup:
    """DexScreener API lookups for spot snapshots."""

    def __init__(
        self,
        base_url: str,
        session: httpx.AsyncClient | None = None,
        reference_trade_usd: float = 150.0,
        pool_fee_rate: float = 0.0025,
        cache_ttl: float = 15.0,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize DexScreener lookup.

        Args:
            base_url: DexScreener API base URL
            session: Optional httpx client session
            reference_trade_usd: Trade size used for spread/impact estimates
            pool_fee_rate: Pool fee rate per leg
            cache_ttl: Cache TTL in seconds
            retry_policy: Retry policy for transport errors
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or httpx.AsyncClient(timeout=30.0)
        self._owns_session = session is None
        self.reference_trade_usd = reference_trade_usd
        self.pool_fee_rate = pool_fee_rate
        self.cache = TTLCache(maxsize=1000, ttl=cache_ttl)
        self.retry_policy = retry_policy or RetryPolicy.http()

    async def _make_request(self, endpoint: str) -> dict[str, Any]:
        """Make HTTP request with retries on transport errors."""
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        async for attempt in self.retry_policy.retrying():
            with attempt:
                response = await self.session.get(url, timeout=30.0)
                response.raise_for_status()
                return response.json()

    async def lookup(self, mint: str) -> AssetSnapshot | None:
        """Look up a token snapshot.

        Returns:
            Snapshot, or None if the token is unknown or the lookup failed
        """
        cache_key = f"token:{mint}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for token", identifier=mint)
            return cached

        try:
            response_data = await self._make_request(f"latest/dex/tokens/{mint}")
        except httpx.HTTPStatusError as e:
            logger.warning(
                "HTTP error in token lookup",
                identifier=mint,
                status_code=e.response.status_code,
            )
            return None
        except httpx.HTTPError as e:
            logger.error("Failed to lookup token", identifier=mint, error=str(e))
            return None
        except ValueError as e:
            # non-JSON body, e.g. an HTML rate-limit page
            logger.warning("Malformed token lookup response", identifier=mint, error=str(e))
            return None

        pairs = response_data.get("pairs") if isinstance(response_data, dict) else None
        snapshot = map_dexscreener_pairs_to_snapshot(
            mint,
            pairs or [],
            trade_usd=self.reference_trade_usd,
            fee_rate=self.pool_fee_rate,
        )
        if snapshot is None:
            logger.info("Token not found", identifier=mint)
            return None

        self.cache.set(cache_key, snapshot)
        logger.info(
            "Looked up token",
            identifier=mint,
            price_usd=snapshot.price_usd,
            liquidity_usd=snapshot.liquidity_usd,
        )
        return snapshot

    async def close(self) -> None:
        if self._owns_session:
            await self.session.aclose()

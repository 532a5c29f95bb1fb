"""Market data gateway combining Solana RPC and DexScreener."""

from typing import Any

import httpx
import structlog

from ..config.settings import StrategyConfig
from ..core.errors import DataUnavailable, SolanaRpcError
from ..core.interfaces import MarketDataSource
from ..core.types import AssetSnapshot, AuthorityRisk
from .dexscreener import DexScreenerLookup
from .solana_rpc import SolanaRpcClient

logger = structlog.get_logger(__name__)


class SolanaMarketData(MarketDataSource):
    """MarketDataSource backed by a Solana RPC node and DexScreener."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        lookup: DexScreenerLookup,
        config: StrategyConfig,
    ) -> None:
        self.rpc = rpc
        self.lookup = lookup
        self.fetch_limit = config.order_flow_fetch_limit
        self.window = config.order_flow_window

    async def snapshot(self, identifier: str) -> AssetSnapshot | None:
        return await self.lookup.lookup(identifier)

    async def recent_transactions(self, identifier: str) -> list[dict[str, Any] | None]:
        """Fetch up to ``fetch_limit`` signatures, then the newest ``window`` bodies.

        Individual transactions that fail to load are returned as None so the
        aggregator counts them as skipped.

        Raises:
            DataUnavailable: If the signature list can't be fetched
        """
        try:
            signatures = await self.rpc.get_signatures(identifier, self.fetch_limit)
        except (SolanaRpcError, httpx.HTTPError, ValueError) as e:
            raise DataUnavailable(
                f"Failed to fetch signatures: {e}", details={"identifier": identifier}
            ) from e

        transactions: list[dict[str, Any] | None] = []
        for sig_info in signatures[: self.window]:
            signature = sig_info.get("signature")
            if not signature or sig_info.get("err") is not None:
                transactions.append(None)
                continue
            try:
                transactions.append(await self.rpc.get_transaction(signature))
            except (SolanaRpcError, httpx.HTTPError, ValueError) as e:
                logger.warning(
                    "Failed to fetch transaction",
                    identifier=identifier,
                    signature=signature,
                    error=str(e),
                )
                transactions.append(None)

        logger.debug(
            "Fetched recent transactions",
            identifier=identifier,
            signatures=len(signatures),
            fetched=len(transactions),
        )
        return transactions

    async def authority_risk(self, identifier: str) -> AuthorityRisk:
        try:
            return await self.rpc.get_mint_authorities(identifier)
        except (SolanaRpcError, httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Authority lookup failed, treating as unknown",
                identifier=identifier,
                error=str(e),
            )
            return AuthorityRisk()

    async def close(self) -> None:
        await self.rpc.close()
        await self.lookup.close()

"""Order-flow aggregation over recent on-chain transactions."""

from typing import Any

import structlog

from ..config.settings import StrategyConfig
from ..core.interfaces import MarketDataSource
from ..core.types import AssetSnapshot, OrderFlowWindow, TradeSide

logger = structlog.get_logger(__name__)


def _fee_payer(tx: dict[str, Any]) -> str | None:
    """Return the first account key (fee payer / trader) of a transaction."""
    message = (tx.get("transaction") or {}).get("message") or {}
    keys = message.get("accountKeys") or []
    if not keys:
        return None
    first = keys[0]
    # jsonParsed encoding yields dicts, json encoding yields plain strings
    if isinstance(first, dict):
        return first.get("pubkey")
    return first if isinstance(first, str) else None


def _owner_balance(balances: list[dict[str, Any]] | None, mint: str, owner: str) -> float:
    total = 0.0
    for entry in balances or []:
        if entry.get("mint") != mint or entry.get("owner") != owner:
            continue
        amount = entry.get("uiTokenAmount") or {}
        ui_amount = amount.get("uiAmount")
        if ui_amount is None:
            ui_amount = amount.get("uiAmountString") or 0
        total += float(ui_amount)
    return total


def classify_transaction(
    tx: dict[str, Any] | None, mint: str
) -> tuple[TradeSide, str, float] | None:
    """Classify a raw transaction relative to ``mint``.

    The fee payer is taken as the counterparty; the sign of its token
    balance change decides BUY or SELL.

    Returns:
        (side, party, token_amount) or None when the transaction can't be
        resolved (missing metadata, failed, or no balance change).
    """
    if not isinstance(tx, dict):
        return None

    meta = tx.get("meta")
    if not isinstance(meta, dict) or meta.get("err") is not None:
        return None

    party = _fee_payer(tx)
    if not party:
        return None

    try:
        pre = _owner_balance(meta.get("preTokenBalances"), mint, party)
        post = _owner_balance(meta.get("postTokenBalances"), mint, party)
    except (TypeError, ValueError):
        return None

    delta = post - pre
    if delta == 0:
        return None

    side = TradeSide.BUY if delta > 0 else TradeSide.SELL
    return side, party, abs(delta)


def aggregate_order_flow(
    transactions: list[dict[str, Any] | None],
    mint: str,
    price_usd: float,
    whale_threshold_usd: float,
    window: int = 20,
) -> OrderFlowWindow:
    """Accumulate buy/sell volume, unique parties and whales.

    Args:
        transactions: Raw transactions, newest first
        mint: Asset the transactions are classified against
        price_usd: Price used to convert token amounts into USD volume
        whale_threshold_usd: Volume at or above which a trade is a whale
        window: Number of most recent transactions to consider

    Returns:
        Aggregated OrderFlowWindow
    """
    buy_volume = 0.0
    sell_volume = 0.0
    buyers: set[str] = set()
    sellers: set[str] = set()
    whales: list[float] = []
    counted = 0
    skipped = 0

    price = max(0.0, price_usd)

    for tx in transactions[:window]:
        resolved = classify_transaction(tx, mint)
        if resolved is None:
            skipped += 1
            continue

        side, party, amount = resolved
        volume_usd = amount * price
        counted += 1

        if side is TradeSide.BUY:
            buy_volume += volume_usd
            buyers.add(party)
        else:
            sell_volume += volume_usd
            sellers.add(party)

        if volume_usd >= whale_threshold_usd:
            whales.append(volume_usd)

    return OrderFlowWindow(
        buy_volume=buy_volume,
        sell_volume=sell_volume,
        unique_buyers=len(buyers),
        unique_sellers=len(sellers),
        whale_volumes=tuple(whales),
        transactions_counted=counted,
        transactions_skipped=skipped,
    )


class OrderFlowAggregator:
    """Fetches recent transactions and reduces them to an OrderFlowWindow."""

    def __init__(self, source: MarketDataSource, config: StrategyConfig) -> None:
        self.source = source
        self.config = config

    async def collect(self, snapshot: AssetSnapshot) -> OrderFlowWindow:
        transactions = await self.source.recent_transactions(snapshot.identifier)
        window = aggregate_order_flow(
            transactions,
            mint=snapshot.identifier,
            price_usd=snapshot.price_usd,
            whale_threshold_usd=self.config.whale_threshold_usd,
            window=self.config.order_flow_window,
        )

        logger.debug(
            "Order flow aggregated",
            identifier=snapshot.identifier,
            buy_volume=window.buy_volume,
            sell_volume=window.sell_volume,
            unique_buyers=window.unique_buyers,
            unique_sellers=window.unique_sellers,
            whales=len(window.whale_volumes),
            skipped=window.transactions_skipped,
        )
        return window

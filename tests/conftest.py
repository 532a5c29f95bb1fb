"""Shared fixtures and fakes for the signal bot tests."""

from typing import Any

import pytest

from signalbot.config.settings import AppSettings, StrategyConfig
from signalbot.core.interfaces import Advisor, AlertSink, DecisionStore, MarketDataSource
from signalbot.core.types import (
    AdvisoryAction,
    AdvisoryJudgment,
    AssetSnapshot,
    AuthorityRisk,
    Decision,
)

MINT = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"
SOL_MINT = "So11111111111111111111111111111111111111112"


def make_trade(
    party: str, pre: float, post: float, mint: str = MINT, err: Any = None
) -> dict[str, Any]:
    """Build a jsonParsed getTransaction result for one trader."""

    def balance(amount: float) -> dict[str, Any]:
        return {
            "accountIndex": 1,
            "mint": mint,
            "owner": party,
            "uiTokenAmount": {"uiAmount": amount, "uiAmountString": str(amount)},
        }

    return {
        "meta": {
            "err": err,
            "preTokenBalances": [balance(pre)] if pre else [],
            "postTokenBalances": [balance(post)] if post else [],
        },
        "transaction": {
            "message": {
                "accountKeys": [{"pubkey": party, "signer": True, "writable": True}]
            },
            "signatures": [f"sig-{party}"],
        },
    }


class FakeMarketData(MarketDataSource):
    """In-memory market data source."""

    def __init__(
        self,
        snapshot: AssetSnapshot | None,
        transactions: list[dict[str, Any] | None] | None = None,
        authority: AuthorityRisk | None = None,
    ):
        self._snapshot = snapshot
        self._transactions = transactions or []
        self._authority = authority or AuthorityRisk(
            mint_authority_active=False, freeze_authority_active=False
        )
        self.snapshot_calls = 0

    async def snapshot(self, identifier: str) -> AssetSnapshot | None:
        self.snapshot_calls += 1
        return self._snapshot

    async def recent_transactions(self, identifier: str) -> list[dict[str, Any] | None]:
        return list(self._transactions)

    async def authority_risk(self, identifier: str) -> AuthorityRisk:
        return self._authority


class ScriptedAdvisor(Advisor):
    """Advisor returning a fixed judgment."""

    def __init__(self, judgment: AdvisoryJudgment):
        self.judgment = judgment
        self.calls = 0

    async def advise(self, metrics, snapshot=None) -> AdvisoryJudgment:
        self.calls += 1
        return self.judgment


class ScriptedCompletion:
    """Completion service returning canned text or raising."""

    def __init__(self, text: str = "", error: Exception | None = None):
        self.text = text
        self.error = error
        self.prompts: list[tuple[str, str]] = []

    async def complete(self, system: str, user: str) -> str:
        self.prompts.append((system, user))
        if self.error is not None:
            raise self.error
        return self.text


class RecordingAlertSink(AlertSink):
    """Alert sink that records pushed messages."""

    def __init__(self, fail: bool = False):
        self.messages: list[str] = []
        self.fail = fail

    async def push(self, message: str) -> None:
        if self.fail:
            raise RuntimeError("alert channel down")
        self.messages.append(message)


class RecordingStore(DecisionStore):
    """Decision store that keeps records in memory."""

    def __init__(self, fail: bool = False):
        self.decisions: list[Decision] = []
        self.fail = fail
        self.initialized = False

    async def initialize(self) -> None:
        self.initialized = True

    async def record_decision(self, decision: Decision) -> str:
        if self.fail:
            raise RuntimeError("disk full")
        self.decisions.append(decision)
        return decision.record_key


@pytest.fixture
def strategy() -> StrategyConfig:
    return StrategyConfig()


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        env="paper",
        rpc_url="https://rpc.example.com",
        advisory_endpoint="https://advisor.example.com",
        advisory_api_key="test-key",
        advisory_deployment="gpt-test",
        health_port=0,
    )


@pytest.fixture
def liquid_snapshot() -> AssetSnapshot:
    """Snapshot that passes every institutional filter."""
    return AssetSnapshot(
        identifier=MINT,
        symbol="NEW",
        pool_address="PooL1111111111111111111111111111111111111111",
        price_usd=0.5,
        liquidity_usd=80000.0,
        spread=0.01,
        price_impact=0.005,
        source="test",
    )


@pytest.fixture
def thin_snapshot() -> AssetSnapshot:
    """Snapshot failing the liquidity filter (and every other one)."""
    return AssetSnapshot(
        identifier=MINT,
        price_usd=0.5,
        liquidity_usd=1000.0,
        spread=0.5,
        price_impact=0.5,
        source="test",
    )


@pytest.fixture
def hold_judgment() -> AdvisoryJudgment:
    return AdvisoryJudgment(
        action=AdvisoryAction.HOLD, confidence=4, reasoning="thin book"
    )


@pytest.fixture
def strong_flow() -> list[dict[str, Any]]:
    """Flow producing delta_buy=2.5, buyers_z=2.25 and four whales at price 0.5.

    38 buyers: two buy 4000 tokens ($2000 each), 36 buy 200 ($100 each), so
    buy volume is 7600. Two sellers sell 3040 tokens each ($1520 each), so sell
    volume is 3040. Needs an order_flow_window of at least 40.
    """
    trades = [make_trade(f"whale{i}", 0, 4000) for i in range(2)]
    trades += [make_trade(f"buyer{i}", 0, 200) for i in range(36)]
    trades += [make_trade(f"seller{i}", 3040, 0) for i in range(2)]
    return trades


@pytest.fixture
def wide_strategy() -> StrategyConfig:
    """Window wide enough for the unique-buyer z-score to clear 2.0."""
    return StrategyConfig(order_flow_window=50)

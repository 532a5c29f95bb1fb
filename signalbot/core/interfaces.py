"""Core interfaces for the decision pipeline."""

from typing import Any, Protocol, runtime_checkable

from .types import (
    AdvisoryJudgment,
    AssetSnapshot,
    AuthorityRisk,
    Decision,
    MigrationCandidate,
    QuantMetrics,
)


class MarketDataSource(Protocol):
    """Market data source protocol."""

    async def snapshot(self, identifier: str) -> AssetSnapshot | None:
        """Return the current price/liquidity snapshot, or None if unknown."""
        ...

    async def recent_transactions(self, identifier: str) -> list[dict[str, Any] | None]:
        """Return raw recent transactions for the asset, newest first."""
        ...

    async def authority_risk(self, identifier: str) -> AuthorityRisk:
        """Look up mint and freeze authority state."""
        ...


class DiscoverySource(Protocol):
    """Discovery method polled by the migration scanner."""

    async def discover(self) -> list[MigrationCandidate]:
        """Return newly listed candidate assets."""
        ...


class CompletionService(Protocol):
    """Raw text completion backend behind the advisory client."""

    async def complete(self, system: str, user: str) -> str:
        """Send a system instruction plus user payload, return response text."""
        ...


@runtime_checkable
class Advisor(Protocol):
    """Advisory judgment provider."""

    async def advise(
        self, metrics: QuantMetrics, snapshot: AssetSnapshot | None = None
    ) -> AdvisoryJudgment:
        """Return a validated judgment for the given metrics."""
        ...


class AlertSink(Protocol):
    """Alert sink protocol."""

    async def push(self, message: str) -> None:
        """Push alert message."""
        ...


class DecisionStore(Protocol):
    """Append-only durable store for decisions."""

    async def record_decision(self, decision: Decision) -> str:
        """Persist a decision and return its record key."""
        ...

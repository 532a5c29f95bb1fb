"""Per-process bot session state.

Every mutable field has exactly one writer:

- ``paper_trading``/``configured``: set once when the pipeline is assembled.
- ``running``/``started_at``: ``AnalysisPipeline.start``/``stop``.
- ``stats``: ``AnalysisPipeline`` after each analysis resolves.
- ``inflight``: ``AnalysisPipeline.analyze`` (insert on start, pop on finish).

Everything else reads.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .types import Decision


@dataclass
class SessionStats:
    """Analysis counters."""

    total_analyses: int = 0
    by_action: Counter = field(default_factory=Counter)
    last_analysis_at: datetime | None = None
    last_identifier: str | None = None

    def record(self, decision: Decision) -> None:
        self.total_analyses += 1
        self.by_action[decision.action.value] += 1
        self.last_analysis_at = decision.created_at
        self.last_identifier = decision.identifier


@dataclass
class BotSession:
    """Explicit context object shared by the pipeline components."""

    paper_trading: bool = True
    configured: bool = True
    running: bool = False
    started_at: datetime | None = None
    stats: SessionStats = field(default_factory=SessionStats)
    inflight: dict[tuple[str, bool], asyncio.Future] = field(default_factory=dict)

    def get_status(self) -> dict[str, Any]:
        """Status payload for the operator channel."""
        uptime = (
            (datetime.now(UTC) - self.started_at).total_seconds()
            if self.started_at and self.running
            else 0.0
        )
        return {
            "configured": self.configured,
            "running": self.running,
            "mode": "paper" if self.paper_trading else "live",
            "uptime_seconds": round(uptime, 1),
            "total_analyses": self.stats.total_analyses,
            "decisions": dict(self.stats.by_action),
            "last_analysis_at": self.stats.last_analysis_at.isoformat()
            if self.stats.last_analysis_at
            else None,
            "last_identifier": self.stats.last_identifier,
            "inflight": len(self.inflight),
        }

    def health(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "bot_running": self.running,
            "timestamp": datetime.now(UTC).isoformat(),
        }

"""Result sink: durable record plus optional operator notification."""

import structlog

from ..alerts.telegram import format_decision
from ..core.interfaces import AlertSink, DecisionStore
from ..core.types import Decision

logger = structlog.get_logger(__name__)


class ResultSink:
    """Publishes decisions. Store and alert failures never reach the caller."""

    def __init__(self, store: DecisionStore, alerts: AlertSink) -> None:
        self.store = store
        self.alerts = alerts

    async def publish(self, decision: Decision, notify: bool = False) -> str | None:
        """Record a decision and optionally push its summary.

        Args:
            decision: Decision to publish
            notify: Push a formatted summary to the operator channel

        Returns:
            Record key, or None when the write failed
        """
        key = None
        try:
            key = await self.store.record_decision(decision)
        except Exception as e:
            logger.error(
                "Failed to record decision",
                identifier=decision.identifier,
                action=decision.action.value,
                error=str(e),
            )

        if notify:
            await self.notify(decision)

        return key

    async def notify(self, decision: Decision) -> None:
        try:
            await self.alerts.push(format_decision(decision))
        except Exception as e:
            logger.error(
                "Failed to push decision alert",
                identifier=decision.identifier,
                error=str(e),
            )

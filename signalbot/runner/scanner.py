"""Migration/listing scanner: polls a discovery source on a fixed interval."""

import asyncio
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from ..core.interfaces import DiscoverySource
from ..core.retry import RetryPolicy
from ..filters.candidates import CandidateFilter

logger = structlog.get_logger(__name__)


class MigrationScanner:
    """Feeds qualifying discoveries into the pipeline entry point.

    ``start`` and ``stop`` are idempotent. The running flag is checked at the
    top of every iteration; a failed iteration backs off and the loop goes on.
    """

    def __init__(
        self,
        discovery: DiscoverySource,
        candidate_filter: CandidateFilter,
        on_candidate: Callable[[str], Awaitable[Any]],
        interval_seconds: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_seen: int = 5000,
    ) -> None:
        """Initialize the scanner.

        Args:
            discovery: Discovery method polled every interval
            candidate_filter: Pre-filter applied before the full pipeline
            on_candidate: Pipeline entry point for qualifying identifiers
            interval_seconds: Poll interval
            retry_policy: Backoff after a failed iteration (default fixed 5s)
            sleep: Sleep coroutine (injectable for tests)
            max_seen: Size of the already-dispatched identifier memory
        """
        self.discovery = discovery
        self.candidate_filter = candidate_filter
        self.on_candidate = on_candidate
        self.interval_seconds = interval_seconds
        self.retry_policy = retry_policy or RetryPolicy(delay_seconds=5.0, sleep=sleep)
        self.sleep = sleep
        self.max_seen = max_seen
        self.running = False
        self.iterations = 0
        self._task: asyncio.Task | None = None
        self._seen: OrderedDict[str, None] = OrderedDict()

    def start(self) -> None:
        """Start polling; a no-op when already running."""
        if self.running:
            logger.debug("Scanner already running")
            return
        self.running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Migration scanner started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop polling; a no-op when not running."""
        if not self.running:
            return
        self.running = False

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Migration scanner stopped", iterations=self.iterations)

    async def _loop(self) -> None:
        while self.running:
            try:
                await self.scan_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Scanner iteration failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    backoff_seconds=self.retry_policy.delay_seconds,
                )
                await self.retry_policy.backoff()
                continue

            await self.sleep(self.interval_seconds)

    async def scan_once(self) -> list[str]:
        """Run one discovery pass.

        Returns:
            Identifiers dispatched to the pipeline in this pass
        """
        self.iterations += 1
        candidates = await self.discovery.discover()

        dispatched: list[str] = []
        for candidate in candidates:
            if candidate.identifier in self._seen:
                continue

            accepted, reasons = self.candidate_filter.evaluate(candidate)
            if not accepted:
                logger.debug(
                    "Candidate rejected by pre-filter",
                    identifier=candidate.identifier,
                    reasons=reasons,
                )
                continue

            logger.info(
                "Candidate qualified",
                identifier=candidate.identifier,
                symbol=candidate.symbol,
                liquidity_usd=candidate.liquidity_usd,
                holders=candidate.holder_count,
                risk_score=candidate.risk_score,
            )
            self._remember(candidate.identifier)
            await self.on_candidate(candidate.identifier)
            dispatched.append(candidate.identifier)

        logger.debug(
            "Scanner pass complete",
            iteration=self.iterations,
            discovered=len(candidates),
            dispatched=len(dispatched),
        )
        return dispatched

    def _remember(self, identifier: str) -> None:
        self._seen[identifier] = None
        while len(self._seen) > self.max_seen:
            self._seen.popitem(last=False)

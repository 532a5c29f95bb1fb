"""Main signal pipeline runner."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import Any

import structlog

from ..advisory.azure_openai import AzureOpenAICompletionService
from ..advisory.client import AdvisoryArbitrationClient
from ..alerts.telegram import TelegramAlertSink, TelegramCommandHandler
from ..config.settings import AppSettings, load_settings
from ..core.errors import FeedDisconnect
from ..core.interfaces import AlertSink
from ..core.retry import RetryPolicy
from ..core.session import BotSession
from ..core.types import Decision, DecisionAction
from ..data.dexscreener import DexScreenerLookup
from ..data.jupiter import JupiterDiscovery
from ..data.market import SolanaMarketData
from ..data.solana_rpc import SolanaRpcClient
from ..data.stream import NewPairFeed
from ..decision.resolver import DecisionResolver
from ..filters.candidates import CandidateFilter
from ..persist.storage import SQLiteDecisionStore
from .health import HealthServer
from .scanner import MigrationScanner
from .sink import ResultSink

logger = structlog.get_logger(__name__)


class NoopAlertSink(AlertSink):
    """No-operation alert sink for when Telegram is not configured."""

    async def push(self, message: str) -> None:
        """No-op push - just log the message."""
        logger.info("Alert (noop)", message=message)


class AnalysisPipeline:
    """Wires feed, scanner and operator channel to one analysis entry point."""

    def __init__(
        self, settings: AppSettings, components: dict[str, Any] | None = None
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings
            components: Pre-built components (tests); assembled from settings
                when omitted
        """
        self.settings = settings
        self.config = settings.strategy
        self.session = BotSession(paper_trading=settings.paper_trading)
        self.components = (
            components if components is not None else self._assemble(settings)
        )
        self.sink = ResultSink(self.components["store"], self.components["alerts"])
        self._tasks: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()

        logger.info(
            "Signal pipeline initialized",
            paper_trading=settings.paper_trading,
            feed=self.components.get("feed") is not None,
            scanner=self.components.get("scanner") is not None,
            commands=self.components.get("commands") is not None,
        )

    def _assemble(self, settings: AppSettings) -> dict[str, Any]:
        """Assemble all pipeline components from settings.

        Args:
            settings: Application settings

        Returns:
            Dictionary of assembled components
        """
        config = settings.strategy
        components: dict[str, Any] = {}

        # Market data
        rpc = SolanaRpcClient(rpc_url=settings.rpc_url)
        lookup = DexScreenerLookup(
            base_url=settings.dexscreener_base,
            reference_trade_usd=config.reference_trade_usd,
            pool_fee_rate=config.pool_fee_rate,
        )
        components["market"] = SolanaMarketData(rpc, lookup, config)
        logger.info("Initialized Solana RPC + DexScreener market data")

        # Advisory
        components["completion"] = AzureOpenAICompletionService(
            endpoint=settings.advisory_endpoint,
            api_key=settings.advisory_api_key,
            deployment=settings.advisory_deployment,
            api_version=settings.advisory_api_version,
            timeout=settings.advisory_timeout_seconds,
        )
        components["advisor"] = AdvisoryArbitrationClient(
            components["completion"], config
        )
        components["resolver"] = DecisionResolver(
            components["market"], components["advisor"], config
        )

        # Storage
        components["store"] = SQLiteDecisionStore(db_path=settings.database_path)
        logger.info("Initialized SQLite decision store")

        # Operator channel
        if settings.telegram_bot_token and settings.telegram_admin_ids:
            alerts = TelegramAlertSink(
                bot_token=settings.telegram_bot_token,
                admin_user_ids=settings.telegram_admin_ids,
            )
            components["alerts"] = alerts
            components["commands"] = TelegramCommandHandler(
                alerts, analyze=self.analyze_forced, status_provider=self.session
            )
            logger.info("Using Telegram alert sink")
        else:
            components["alerts"] = NoopAlertSink()
            logger.info("Using noop alert sink (no Telegram config)")

        # Discovery: continuous feed
        if settings.streaming_api_key:
            components["feed"] = NewPairFeed(
                url=settings.streaming_url,
                api_key=settings.streaming_api_key,
                on_identifier=self.handle_discovery,
                retry_policy=RetryPolicy(
                    delay_seconds=settings.reconnect_delay_seconds,
                    retry_on=(FeedDisconnect,),
                ),
            )
            logger.info("Added new pair feed", url=settings.streaming_url)
        else:
            logger.warning("Streaming API key not provided, skipping new pair feed")

        # Discovery: polling scanner
        if settings.scanner_enabled:
            components["discovery"] = JupiterDiscovery(base_url=settings.jupiter_base)
            components["scanner"] = MigrationScanner(
                discovery=components["discovery"],
                candidate_filter=CandidateFilter(config),
                on_candidate=self.handle_discovery,
                interval_seconds=settings.scanner_interval_seconds,
                retry_policy=RetryPolicy(delay_seconds=settings.scanner_backoff_seconds),
            )
            logger.info(
                "Added migration scanner",
                interval_seconds=settings.scanner_interval_seconds,
            )

        webhook = settings.telegram_webhook_enabled and "commands" in components
        if settings.health_port:
            components["health"] = HealthServer(
                self.session,
                port=settings.health_port,
                commands=components["commands"] if webhook else None,
                webhook_secret=settings.telegram_webhook_secret,
            )
        elif webhook:
            logger.warning("Telegram webhook mode needs health_port; no updates will arrive")

        return components

    def should_notify(self, decision: Decision) -> bool:
        return (
            decision.action is DecisionAction.BUY
            and decision.confidence > self.config.notify_confidence_threshold
        )

    async def analyze(
        self, identifier: str, forced: bool = False, notify: bool = False
    ) -> Decision:
        """Single entry point for feed, scanner and operator requests.

        Concurrent calls with the same ``(identifier, forced)`` share one
        analysis and get the same Decision back. The first caller's ``notify``
        applies to the shared analysis.

        Args:
            identifier: Token mint address
            forced: Bypass the filter gate
            notify: Push qualifying BUY decisions to the operator channel

        Returns:
            The resolved Decision
        """
        key = (identifier, forced)
        task = self.session.inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._analyze(identifier, forced, notify))
            self.session.inflight[key] = task

            def _release(done: asyncio.Task, key=key) -> None:
                if self.session.inflight.get(key) is done:
                    del self.session.inflight[key]

            task.add_done_callback(_release)
        else:
            logger.info(
                "Joining in-flight analysis", identifier=identifier, forced=forced
            )

        return await asyncio.shield(task)

    async def analyze_forced(self, identifier: str) -> Decision:
        return await self.analyze(identifier, forced=True)

    async def _analyze(self, identifier: str, forced: bool, notify: bool) -> Decision:
        decision = await self.components["resolver"].run(identifier, forced=forced)
        self.session.stats.record(decision)
        await self.sink.publish(
            decision, notify=notify and self.should_notify(decision)
        )
        return decision

    async def handle_discovery(self, identifier: str) -> Decision | None:
        """Feed and scanner callback."""
        if not (self.session.configured and self.session.running):
            logger.debug("Discovery ignored, bot not running", identifier=identifier)
            return None
        return await self.analyze(identifier, notify=True)

    def get_status(self) -> dict[str, Any]:
        return self.session.get_status()

    async def start(self) -> None:
        """Start discovery, then serve /health and the operator channel."""
        if self.session.running:
            return

        await self.components["store"].initialize()
        self.session.running = True
        self.session.started_at = datetime.now(UTC)
        self._stop_event.clear()

        feed = self.components.get("feed")
        if feed is not None:
            self._tasks.append(asyncio.create_task(feed.run()))

        scanner = self.components.get("scanner")
        if scanner is not None:
            scanner.start()

        health = self.components.get("health")
        if health is not None:
            await health.start()

        commands = self.components.get("commands")
        if commands is not None:
            if self.settings.telegram_webhook_enabled:
                await self._register_webhook()
            else:
                self._tasks.append(asyncio.create_task(commands.poll_updates()))

        mode = "paper" if self.settings.paper_trading else "live"
        logger.info("Signal pipeline started", mode=mode)
        await self.components["alerts"].push(f"🤖 Signal bot started in {mode} mode")

    async def _register_webhook(self) -> None:
        url = self.settings.telegram_webhook_url
        try:
            await self.components["alerts"].set_webhook(
                url, secret_token=self.settings.telegram_webhook_secret
            )
        except Exception as e:
            logger.error("Failed to register Telegram webhook", url=url, error=str(e))

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run_forever(self) -> None:
        """Run until a stop is requested."""
        await self.start()
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            logger.info("Pipeline cancelled")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the signal pipeline."""
        if not self.session.running:
            return
        logger.info("Stopping signal pipeline")
        self.session.running = False

        feed = self.components.get("feed")
        if feed is not None:
            feed.stop()

        commands = self.components.get("commands")
        if commands is not None:
            commands.stop()

        scanner = self.components.get("scanner")
        if scanner is not None:
            await scanner.stop()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        health = self.components.get("health")
        if health is not None:
            await health.stop()

        # Send shutdown alert
        await self.components["alerts"].push("🛑 Signal bot stopped")
        await self.close()

    async def close(self) -> None:
        """Release network clients and storage."""
        for name in ("market", "completion", "discovery", "alerts", "store"):
            close = getattr(self.components.get(name), "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.warning("Failed to close component", component=name, error=str(e))


def configure_logging(level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )


async def main() -> None:
    """Main entry point for the signal bot."""
    parser = argparse.ArgumentParser(description="Solana New Listing Signal Bot")
    parser.add_argument(
        "--config", default="configs/paper.yaml", help="Configuration file path"
    )
    parser.add_argument(
        "--profile",
        default="paper",
        choices=["dev", "paper", "prod"],
        help="Configuration profile",
    )
    parser.add_argument(
        "--analyze",
        metavar="MINT",
        help="Run one forced analysis, print the decision and exit",
    )

    args = parser.parse_args()

    try:
        settings = load_settings(args.profile, args.config)
        configure_logging(settings.log_level)
        logger.info("Settings loaded", profile=args.profile, config=args.config)

        pipeline = AnalysisPipeline(settings)
    except Exception as e:
        logger.error("Fatal error", error=str(e))
        sys.exit(1)

    if args.analyze:
        await pipeline.components["store"].initialize()
        decision = await pipeline.analyze(args.analyze, forced=True)
        print(json.dumps(decision.model_dump(mode="json"), indent=2))
        await pipeline.close()
        return

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, pipeline.request_stop)

    await pipeline.run_forever()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()

"""Continuous new-pair feed over a websocket."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp
import structlog

from ..core.errors import FeedDisconnect
from ..core.retry import RetryPolicy

logger = structlog.get_logger(__name__)

SUBSCRIBE_MESSAGE = {"id": 1, "method": "newPairSubscribe"}

# Quote-side mints; the other token of a new pair is the listing
QUOTE_MINTS = frozenset(
    {
        "So11111111111111111111111111111111111111112",  # wrapped SOL
        "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",  # USDC
        "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",  # USDT
    }
)


def extract_identifier(message: dict[str, Any]) -> str | None:
    """Pull the newly listed mint out of a feed message."""
    params = message.get("params")
    if isinstance(params, dict):
        pair = params.get("pair")
        if isinstance(pair, dict):
            base = (pair.get("baseToken") or {}).get("account")
            quote = (pair.get("quoteToken") or {}).get("account")
            if isinstance(base, str) and base and base not in QUOTE_MINTS:
                return base
            if isinstance(quote, str) and quote and quote not in QUOTE_MINTS:
                return quote
        for key in ("mint", "address"):
            if isinstance(params.get(key), str) and params[key]:
                return params[key]

    for key in ("mint", "address"):
        if isinstance(message.get(key), str) and message[key]:
            return message[key]
    return None


class NewPairFeed:
    """Subscribes to new-pair notifications and dispatches each mint."""

    def __init__(
        self,
        url: str,
        api_key: str,
        on_identifier: Callable[[str], Awaitable[Any]],
        retry_policy: RetryPolicy | None = None,
        session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
        heartbeat: float = 30.0,
    ) -> None:
        """Initialize the feed.

        Args:
            url: Websocket URL
            api_key: Sent as X-API-KEY on connect
            on_identifier: Pipeline entry point for discovered mints
            retry_policy: Reconnect policy (default: unbounded, fixed 5s)
            session_factory: aiohttp session factory (injectable for tests)
            heartbeat: Websocket ping interval in seconds
        """
        self.url = url
        self.api_key = api_key
        self.on_identifier = on_identifier
        self.retry_policy = retry_policy or RetryPolicy(
            delay_seconds=5.0, retry_on=(FeedDisconnect,)
        )
        self.session_factory = session_factory
        self.heartbeat = heartbeat
        self.running = False
        self.connections = 0
        self._tasks: set[asyncio.Task] = set()

    async def run(self) -> None:
        """Connect and keep reconnecting until ``stop`` is called."""
        self.running = True
        logger.info("New pair feed starting", url=self.url)
        try:
            async for attempt in self.retry_policy.retrying():
                with attempt:
                    await self._connect_once()
        finally:
            self.running = False

    def stop(self) -> None:
        self.running = False

    async def _connect_once(self) -> None:
        try:
            async with self.session_factory() as session:
                async with session.ws_connect(
                    self.url,
                    headers={"X-API-KEY": self.api_key},
                    heartbeat=self.heartbeat,
                ) as ws:
                    self.connections += 1
                    await ws.send_json(SUBSCRIBE_MESSAGE)
                    logger.info("New pair feed subscribed", connection=self.connections)

                    async for msg in ws:
                        if not self.running:
                            break
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            self.handle_message(msg.data)
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            logger.error("New pair feed error", error=str(ws.exception()))
                            break
        except Exception as e:
            # CancelledError still propagates
            if not self.running:
                return
            logger.warning(
                "New pair feed connection failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise FeedDisconnect(
                f"Feed connection failed: {type(e).__name__}: {e}"
            ) from e

        if self.running:
            logger.warning(
                "New pair feed closed; reconnecting",
                delay_seconds=self.retry_policy.delay_seconds,
            )
            raise FeedDisconnect("Feed closed")

    def handle_message(self, raw: str) -> str | None:
        """Parse one inbound message and dispatch its mint.

        Malformed messages are logged and dropped.
        """
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("Dropping malformed feed message", error=str(e))
            return None

        if not isinstance(message, dict):
            logger.warning("Dropping non-object feed message")
            return None

        identifier = extract_identifier(message)
        if identifier is None:
            # subscription acks and keepalives
            logger.debug("Feed message without identifier", keys=list(message))
            return None

        logger.info("New pair discovered", identifier=identifier)
        task = asyncio.create_task(self._dispatch(identifier))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return identifier

    async def _dispatch(self, identifier: str) -> None:
        try:
            await self.on_identifier(identifier)
        except Exception as e:
            logger.error(
                "Feed handler failed", identifier=identifier, error=str(e)
            )

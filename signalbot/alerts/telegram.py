"""Telegram operator channel: decision summaries and admin commands."""

import html
import json
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from ..core.interfaces import AlertSink
from ..core.retry import RetryPolicy
from ..core.types import Decision, DecisionAction

logger = structlog.get_logger(__name__)

# Telegram rejects messages over 4096 characters
MAX_MESSAGE_CHARS = 4000
MAX_REASONING_CHARS = 1200

ACTION_ICONS = {
    DecisionAction.BUY: "🟢",
    DecisionAction.WATCH: "👀",
    DecisionAction.HOLD: "⏸",
    DecisionAction.SKIP: "⏭",
    DecisionAction.REJECT: "⛔",
    DecisionAction.ERROR: "❌",
}


@runtime_checkable
class StatusProvider(Protocol):
    """Protocol for status callback provider."""

    def get_status(self) -> dict[str, Any]:
        """Get current system status."""
        ...


def format_decision(decision: Decision) -> str:
    """Render a decision as a Telegram HTML summary.

    Args:
        decision: Decision to render

    Returns:
        HTML message including the filter verdict when one was evaluated
    """
    icon = ACTION_ICONS.get(decision.action, "•")
    snap = decision.snapshot
    symbol = f" {html.escape(snap.symbol)}" if snap and snap.symbol else ""

    lines = [
        f"{icon} <b>{decision.action.value}</b>{symbol} "
        f"(confidence {decision.confidence}/10)",
        f"Token: <code>{html.escape(decision.identifier)}</code>",
    ]
    if decision.forced:
        lines.append("Mode: forced analysis")

    if snap is not None:
        lines.append(
            f"Price: ${snap.price_usd:.8g} | Liquidity: ${snap.liquidity_usd:,.0f}"
        )
        lines.append(
            f"Spread: {snap.spread:.2%} | Impact: {snap.price_impact:.2%}"
        )

    result = decision.filter_result
    if result is not None:
        if result.passed:
            lines.append("Filter: ✅ passed")
        else:
            lines.append(
                f"Filter: ❌ {result.reason.value}: {html.escape(result.detail)}"
            )

    metrics = decision.metrics
    if metrics is not None:
        lines.append(
            f"Delta buy: {metrics.delta_buy:.2f} | Buyers z: {metrics.buyers_z:.2f} | "
            f"Whales: {metrics.whale_count} | Strength: {metrics.signal_strength}/10"
        )

    if decision.action is DecisionAction.BUY:
        lines.append(f"Size: ${decision.position_size_usd:,.2f}")
        plan = decision.exit_plan
        if plan is not None:
            targets = ", ".join(f"${p:.8g}" for p in plan.take_profit_prices_usd)
            lines.append(f"Stop: ${plan.stop_loss_price_usd:.8g} | Targets: {targets}")
            lines.append(
                f"Trailing cap: {plan.trailing_stop_cap:.0%} | "
                f"Time stop: {plan.time_stop_seconds}s"
            )

    reasoning = decision.reasoning
    if len(reasoning) > MAX_REASONING_CHARS:
        reasoning = reasoning[:MAX_REASONING_CHARS] + "..."
    lines.append("")
    lines.append(f"<i>{html.escape(reasoning)}</i>")

    return "\n".join(lines)


class TelegramAlertSink(AlertSink):
    """Telegram-based alert sink implementation."""

    def __init__(
        self,
        bot_token: str,
        admin_user_ids: list[int],
        session: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize Telegram alert sink.

        Args:
            bot_token: Telegram bot token
            admin_user_ids: List of admin user IDs to send alerts to
            session: Optional HTTP session for requests
        """
        self.bot_token = bot_token
        self.admin_user_ids = admin_user_ids
        self.session = session or httpx.AsyncClient()
        self.base_url = f"https://api.telegram.org/bot{bot_token}"

        logger.info("Telegram alert sink initialized", admin_count=len(admin_user_ids))

    async def push(self, message: str) -> None:
        """Push alert message to all admin users.

        Args:
            message: Alert message to send
        """
        if not self.admin_user_ids:
            logger.warning("No admin users configured, skipping alert")
            return

        success_count = 0
        for user_id in self.admin_user_ids:
            try:
                await self._send_message(user_id, message)
                success_count += 1
                logger.debug("Alert sent to admin", user_id=user_id)
            except Exception as e:
                logger.error(
                    "Failed to send alert to admin", user_id=user_id, error=str(e)
                )

        logger.info(
            "Alert push completed",
            total_admins=len(self.admin_user_ids),
            success_count=success_count,
        )

    async def _send_message(self, chat_id: int, text: str) -> None:
        """Send message to specific chat ID.

        Args:
            chat_id: Telegram chat ID
            text: Message text
        """
        url = f"{self.base_url}/sendMessage"
        data = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}

        response = await self.session.post(url, json=data)
        response.raise_for_status()

        result = response.json()
        if not result.get("ok"):
            raise RuntimeError(
                f"Telegram API error: {result.get('description', 'Unknown error')}"
            )

    async def get_updates(
        self, offset: int | None = None, timeout: int = 30
    ) -> list[dict[str, Any]]:
        """Long-poll the Bot API for new updates.

        Args:
            offset: First update id to return
            timeout: Server-side long-poll timeout in seconds

        Returns:
            Update objects, oldest first
        """
        params: dict[str, Any] = {"timeout": timeout, "allowed_updates": '["message"]'}
        if offset is not None:
            params["offset"] = offset

        response = await self.session.get(
            f"{self.base_url}/getUpdates", params=params, timeout=timeout + 10
        )
        response.raise_for_status()

        result = response.json()
        if not result.get("ok"):
            raise RuntimeError(
                f"Telegram API error: {result.get('description', 'Unknown error')}"
            )
        return result.get("result") or []

    async def set_webhook(self, url: str, secret_token: str | None = None) -> None:
        """Register ``url`` as the update webhook.

        Telegram echoes ``secret_token`` in the X-Telegram-Bot-Api-Secret-Token
        header of every delivery.
        """
        data: dict[str, Any] = {"url": url, "allowed_updates": ["message"]}
        if secret_token:
            data["secret_token"] = secret_token

        response = await self.session.post(f"{self.base_url}/setWebhook", json=data)
        response.raise_for_status()

        result = response.json()
        if not result.get("ok"):
            raise RuntimeError(
                f"Telegram API error: {result.get('description', 'Unknown error')}"
            )
        logger.info("Telegram webhook registered", url=url)

    async def close(self) -> None:
        """Close the alert sink and cleanup resources."""
        if self.session:
            await self.session.aclose()
        logger.info("Telegram alert sink closed")

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()


class TelegramCommandHandler:
    """Admin command handler: /analyze, /status, /help."""

    def __init__(
        self,
        alert_sink: TelegramAlertSink,
        analyze: Callable[[str], Awaitable[Decision]] | None = None,
        status_provider: StatusProvider | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize command handler.

        Args:
            alert_sink: Telegram alert sink instance
            analyze: Forced-analysis entry point for /analyze
            status_provider: Status provider for /status and /help
            retry_policy: Backoff after a failed poll
        """
        self.alert_sink = alert_sink
        self.analyze = analyze
        self.status_provider = status_provider
        self.retry_policy = retry_policy or RetryPolicy(delay_seconds=5.0)
        self.running = False
        self._offset: int | None = None

        logger.info("Telegram command handler initialized")

    async def handle_command(self, command: str) -> str:
        """Handle one command and return the reply text.

        Args:
            command: Command text (e.g., "/analyze <mint>")

        Returns:
            Response message
        """
        if not command.startswith("/"):
            return "Invalid command format"

        cmd_parts = command.split()
        # "/status@MyBot" in group chats
        cmd = cmd_parts[0].split("@", 1)[0].lower()

        if cmd == "/analyze":
            return await self._handle_analyze_command(cmd_parts[1:])
        elif cmd == "/status":
            return self._handle_status_command()
        elif cmd in ("/help", "/start"):
            return self._handle_help_command()
        else:
            return f"Unknown command: {html.escape(cmd)}"

    async def _handle_analyze_command(self, args: list[str]) -> str:
        if not args:
            return "Usage: /analyze &lt;token mint&gt;"
        if self.analyze is None:
            return "⚠️ Analysis not available"

        identifier = args[0].strip()
        logger.info("Operator analysis requested", identifier=identifier)
        decision = await self.analyze(identifier)
        return format_decision(decision)

    def _handle_status_command(self) -> str:
        if self.status_provider is None:
            return "⚠️ Status provider not available"

        try:
            status = self.status_provider.get_status()
            status_json = json.dumps(status, indent=2, default=str)

            if len(status_json) > MAX_MESSAGE_CHARS:
                status_json = status_json[:MAX_MESSAGE_CHARS] + "\n... (truncated)"

            return f"📊 <b>System Status</b>\n\n<pre>{html.escape(status_json)}</pre>"

        except Exception as e:
            logger.error("Failed to get status", error=str(e))
            return f"❌ Error getting status: {html.escape(str(e))}"

    def _handle_help_command(self) -> str:
        state = ""
        if self.status_provider is not None:
            status = self.status_provider.get_status()
            running = "running" if status.get("running") else "stopped"
            state = f"Bot is {running} in {status.get('mode', 'paper')} mode.\n\n"

        return (
            "🤖 <b>Signal Bot Commands</b>\n\n"
            f"{state}"
            "<b>/analyze &lt;mint&gt;</b> - Force an analysis (bypasses filters)\n"
            "<b>/status</b> - Get current system status\n"
            "<b>/help</b> - Show this help message\n\n"
            "BUY signals are sent automatically to configured admins."
        )

    async def handle_update(self, update: dict[str, Any]) -> None:
        """Handle incoming Telegram update.

        Args:
            update: Telegram update object
        """
        try:
            message = update.get("message") or {}
            chat_id = (message.get("chat") or {}).get("id")
            text = message.get("text", "")

            if not chat_id or not text:
                return

            user_id = (message.get("from") or {}).get("id")
            if user_id not in self.alert_sink.admin_user_ids:
                logger.warning("Unauthorized command attempt", user_id=user_id)
                return

            response = await self.handle_command(text)
            await self.alert_sink._send_message(chat_id, response)

            logger.info("Command handled", command=text, user_id=user_id)

        except Exception as e:
            logger.error("Failed to handle update", error=str(e))

    async def poll_updates(self, poll_timeout: int = 30) -> None:
        """Long-poll loop feeding updates to ``handle_update`` until stopped."""
        self.running = True
        logger.info("Telegram command polling started")

        while self.running:
            try:
                updates = await self.alert_sink.get_updates(
                    self._offset, timeout=poll_timeout
                )
            except Exception as e:
                logger.error("Telegram poll failed", error=str(e))
                await self.retry_policy.backoff()
                continue

            for update in updates:
                update_id = update.get("update_id")
                if isinstance(update_id, int):
                    self._offset = update_id + 1
                await self.handle_update(update)

        logger.info("Telegram command polling stopped")

    def stop(self) -> None:
        self.running = False

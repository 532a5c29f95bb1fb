"""Tests for the Telegram operator channel."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx

from conftest import MINT
from signalbot.alerts.telegram import (
    StatusProvider,
    TelegramAlertSink,
    TelegramCommandHandler,
    format_decision,
)
from signalbot.core.retry import RetryPolicy
from signalbot.core.types import (
    AssetSnapshot,
    Decision,
    DecisionAction,
    ExitPlan,
    FilterReason,
    FilterResult,
    QuantMetrics,
)


class MockStatusProvider:
    """Mock status provider for testing."""

    def __init__(self, status_data: dict):
        self.status_data = status_data

    def get_status(self) -> dict:
        return self.status_data


def _ok_response():
    response = AsyncMock()
    response.json = MagicMock(return_value={"ok": True, "result": {"message_id": 1}})
    response.raise_for_status = MagicMock()
    return response


@pytest.fixture
def buy_decision():
    return Decision(
        identifier=MINT,
        action=DecisionAction.BUY,
        confidence=8,
        reasoning="Strong <flow> & whales",
        position_size_usd=150.0,
        snapshot=AssetSnapshot(
            identifier=MINT,
            symbol="NEW",
            price_usd=0.5,
            liquidity_usd=80000.0,
            spread=0.01,
            price_impact=0.005,
        ),
        filter_result=FilterResult(passed=True),
        metrics=QuantMetrics(
            delta_buy=2.5,
            buyers_z=2.25,
            whale_count=4,
            whales_ok=True,
            flow_ok=True,
            signal_strength=10,
        ),
        exit_plan=ExitPlan(
            entry_price_usd=0.5,
            stop_loss_price_usd=0.44,
            take_profit_prices_usd=[0.6, 0.75, 1.0],
            trailing_stop_cap=0.2,
            time_stop_seconds=1800,
        ),
    )


class TestFormatDecision:
    """Test decision summaries."""

    def test_buy_summary(self, buy_decision):
        text = format_decision(buy_decision)

        assert text.startswith("🟢 <b>BUY</b> NEW (confidence 8/10)")
        assert f"<code>{MINT}</code>" in text
        assert "Filter: ✅ passed" in text
        assert "Liquidity: $80,000" in text
        assert "Size: $150.00" in text
        assert "Stop: $0.44" in text
        assert "Time stop: 1800s" in text
        assert "Strong &lt;flow&gt; &amp; whales" in text
        assert "forced" not in text

    def test_failed_filter_on_forced_run(self):
        decision = Decision(
            identifier=MINT,
            action=DecisionAction.HOLD,
            confidence=3,
            reasoning="thin",
            forced=True,
            filter_result=FilterResult(
                passed=False, reason=FilterReason.LIQUIDITY, detail="liquidity < $50,000"
            ),
        )

        text = format_decision(decision)

        assert "Mode: forced analysis" in text
        assert "Filter: ❌ liquidity: liquidity &lt; $50,000" in text
        assert "Size:" not in text

    def test_long_reasoning_truncated(self):
        decision = Decision(
            identifier=MINT,
            action=DecisionAction.ERROR,
            confidence=0,
            reasoning="x" * 5000,
        )

        text = format_decision(decision)

        assert len(text) < 1500
        assert text.endswith("...</i>")


class TestTelegramAlertSink:
    """Test Telegram alert sink functionality."""

    @pytest.fixture
    def alert_sink(self):
        """Create a test alert sink."""
        return TelegramAlertSink(
            bot_token="test_token_123",
            admin_user_ids=[12345, 67890],
            session=AsyncMock(spec=httpx.AsyncClient),
        )

    def test_initialization(self, alert_sink):
        assert alert_sink.admin_user_ids == [12345, 67890]
        assert alert_sink.base_url == "https://api.telegram.org/bottest_token_123"

    @pytest.mark.asyncio
    async def test_push_message_success(self, alert_sink):
        """Test successful message push."""
        alert_sink.session.post.return_value = _ok_response()

        await alert_sink.push("Test alert message")

        assert alert_sink.session.post.call_count == 2
        first_call = alert_sink.session.post.call_args_list[0]
        assert (
            first_call[0][0] == "https://api.telegram.org/bottest_token_123/sendMessage"
        )
        assert first_call[1]["json"]["chat_id"] == 12345
        assert first_call[1]["json"]["text"] == "Test alert message"
        assert first_call[1]["json"]["parse_mode"] == "HTML"
        assert alert_sink.session.post.call_args_list[1][1]["json"]["chat_id"] == 67890

    @pytest.mark.asyncio
    async def test_push_message_no_admins(self):
        alert_sink = TelegramAlertSink(
            bot_token="test_token",
            admin_user_ids=[],
            session=AsyncMock(spec=httpx.AsyncClient),
        )

        await alert_sink.push("Test message")

        alert_sink.session.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_push_message_partial_failure(self, alert_sink):
        """A failing admin doesn't stop delivery to the others."""
        mock_failure = AsyncMock()
        mock_failure.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError(
                "Error", request=MagicMock(), response=MagicMock()
            )
        )
        alert_sink.session.post.side_effect = [mock_failure, _ok_response()]

        await alert_sink.push("Test message")

        assert alert_sink.session.post.call_count == 2

    @pytest.mark.asyncio
    async def test_send_message_telegram_error(self, alert_sink):
        response = AsyncMock()
        response.json = MagicMock(return_value={"ok": False, "description": "Bad Request"})
        response.raise_for_status = MagicMock()
        alert_sink.session.post.return_value = response

        with pytest.raises(RuntimeError, match="Telegram API error: Bad Request"):
            await alert_sink._send_message(12345, "Test message")

    @pytest.mark.asyncio
    async def test_context_manager(self):
        mock_session = AsyncMock(spec=httpx.AsyncClient)

        async with TelegramAlertSink("test_token", [12345], mock_session) as sink:
            assert isinstance(sink, TelegramAlertSink)

        mock_session.aclose.assert_called_once()


class TestTelegramCommandHandler:
    """Test admin commands."""

    @pytest.fixture
    def alert_sink(self):
        sink = TelegramAlertSink(
            bot_token="test_token",
            admin_user_ids=[12345],
            session=AsyncMock(spec=httpx.AsyncClient),
        )
        sink.session.post.return_value = _ok_response()
        return sink

    @pytest.fixture
    def command_handler(self, alert_sink):
        return TelegramCommandHandler(alert_sink)

    @pytest.mark.asyncio
    async def test_analyze_command(self, alert_sink, buy_decision):
        analyze = AsyncMock(return_value=buy_decision)
        handler = TelegramCommandHandler(alert_sink, analyze=analyze)

        response = await handler.handle_command(f"/analyze {MINT}")

        analyze.assert_awaited_once_with(MINT)
        assert response == format_decision(buy_decision)

    @pytest.mark.asyncio
    async def test_analyze_command_with_bot_suffix(self, alert_sink, buy_decision):
        analyze = AsyncMock(return_value=buy_decision)
        handler = TelegramCommandHandler(alert_sink, analyze=analyze)

        await handler.handle_command(f"/analyze@SignalBot {MINT}")

        analyze.assert_awaited_once_with(MINT)

    @pytest.mark.asyncio
    async def test_analyze_usage(self, alert_sink):
        handler = TelegramCommandHandler(alert_sink, analyze=AsyncMock())

        response = await handler.handle_command("/analyze")

        assert response.startswith("Usage: /analyze")
        handler.analyze.assert_not_called()

    @pytest.mark.asyncio
    async def test_analyze_unavailable(self, command_handler):
        response = await command_handler.handle_command(f"/analyze {MINT}")

        assert "not available" in response

    @pytest.mark.asyncio
    async def test_status_command(self, alert_sink):
        provider = MockStatusProvider({"running": True, "mode": "paper"})
        handler = TelegramCommandHandler(alert_sink, status_provider=provider)

        response = await handler.handle_command("/status")

        assert "📊" in response
        assert "System Status" in response
        assert "&quot;mode&quot;: &quot;paper&quot;" in response

    @pytest.mark.asyncio
    async def test_status_command_no_provider(self, command_handler):
        response = await command_handler.handle_command("/status")

        assert "⚠️" in response
        assert "not available" in response

    @pytest.mark.asyncio
    async def test_status_command_large_response(self, alert_sink):
        provider = MockStatusProvider({"data": "x" * 5000})
        handler = TelegramCommandHandler(alert_sink, status_provider=provider)

        response = await handler.handle_command("/status")

        assert len(response) <= 4096
        assert "... (truncated)" in response

    @pytest.mark.asyncio
    async def test_help_command(self, alert_sink):
        provider = MockStatusProvider({"running": True, "mode": "live"})
        handler = TelegramCommandHandler(alert_sink, status_provider=provider)

        response = await handler.handle_command("/help")

        assert "Signal Bot Commands" in response
        assert "Bot is running in live mode." in response
        assert "/analyze" in response

    @pytest.mark.asyncio
    async def test_invalid_and_unknown_commands(self, command_handler):
        assert await command_handler.handle_command("hello") == "Invalid command format"
        assert "Unknown command" in await command_handler.handle_command("/buy")

    @pytest.mark.asyncio
    async def test_handle_update_replies_to_chat(self, command_handler):
        update = {
            "message": {"chat": {"id": 555}, "from": {"id": 12345}, "text": "/help"}
        }

        await command_handler.handle_update(update)

        call = command_handler.alert_sink.session.post.call_args
        assert call[1]["json"]["chat_id"] == 555
        assert "Signal Bot Commands" in call[1]["json"]["text"]

    @pytest.mark.asyncio
    async def test_handle_update_unauthorized_user(self, command_handler):
        update = {
            "message": {"chat": {"id": 99999}, "from": {"id": 99999}, "text": "/help"}
        }

        await command_handler.handle_update(update)

        command_handler.alert_sink.session.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_handle_update_missing_fields(self, command_handler):
        await command_handler.handle_update(
            {"message": {"from": {"id": 12345}, "text": "/help"}}
        )
        await command_handler.handle_update(
            {"message": {"chat": {"id": 12345}, "from": {"id": 12345}}}
        )

        command_handler.alert_sink.session.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_handle_update_analysis_failure_is_contained(self, alert_sink):
        handler = TelegramCommandHandler(
            alert_sink, analyze=AsyncMock(side_effect=RuntimeError("boom"))
        )
        update = {
            "message": {
                "chat": {"id": 12345},
                "from": {"id": 12345},
                "text": f"/analyze {MINT}",
            }
        }

        await handler.handle_update(update)

        alert_sink.session.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_poll_updates_advances_offset(self, alert_sink):
        handler = TelegramCommandHandler(
            alert_sink, retry_policy=RetryPolicy(delay_seconds=0.0, sleep=AsyncMock())
        )
        update = {
            "update_id": 41,
            "message": {"chat": {"id": 12345}, "from": {"id": 12345}, "text": "/help"},
        }
        calls = []

        async def get_updates(offset, timeout=30):
            calls.append(offset)
            if len(calls) == 1:
                return [update]
            if len(calls) == 2:
                raise httpx.ReadTimeout("slow")
            handler.stop()
            return []

        alert_sink.get_updates = get_updates

        await handler.poll_updates(poll_timeout=1)

        assert calls == [None, 42, 42]
        handler.retry_policy.sleep.assert_awaited_once_with(0.0)
        assert alert_sink.session.post.call_count == 1


class TestTelegramIntegration:
    """Integration tests with respx HTTP mocking."""

    @pytest.mark.asyncio
    async def test_send_message(self):
        with respx.mock as respx_mock:
            respx_mock.post("https://api.telegram.org/bottest_token/sendMessage").mock(
                return_value=httpx.Response(
                    200, json={"ok": True, "result": {"message_id": 123}}
                )
            )

            alert_sink = TelegramAlertSink("test_token", [12345])
            await alert_sink.push("Integration test message")

            assert respx_mock.calls.call_count == 1
            request_data = json.loads(respx_mock.calls[0].request.content)
            assert request_data["chat_id"] == 12345
            assert request_data["text"] == "Integration test message"
            assert request_data["parse_mode"] == "HTML"
            await alert_sink.close()

    @pytest.mark.asyncio
    async def test_get_updates(self):
        with respx.mock as respx_mock:
            route = respx_mock.get(
                url__startswith="https://api.telegram.org/bottest_token/getUpdates"
            ).mock(
                return_value=httpx.Response(
                    200, json={"ok": True, "result": [{"update_id": 7}]}
                )
            )

            alert_sink = TelegramAlertSink("test_token", [12345])
            updates = await alert_sink.get_updates(offset=7, timeout=5)

            assert updates == [{"update_id": 7}]
            params = route.calls.last.request.url.params
            assert params["offset"] == "7"
            assert params["timeout"] == "5"
            await alert_sink.close()

    @pytest.mark.asyncio
    async def test_http_error(self):
        with respx.mock as respx_mock:
            respx_mock.post("https://api.telegram.org/bottest_token/sendMessage").mock(
                return_value=httpx.Response(500, text="Internal Server Error")
            )

            alert_sink = TelegramAlertSink("test_token", [12345])

            with pytest.raises(httpx.HTTPStatusError):
                await alert_sink._send_message(12345, "Test message")
            await alert_sink.close()

    @pytest.mark.asyncio
    async def test_set_webhook(self):
        with respx.mock as respx_mock:
            route = respx_mock.post(
                "https://api.telegram.org/bottest_token/setWebhook"
            ).mock(return_value=httpx.Response(200, json={"ok": True, "result": True}))

            alert_sink = TelegramAlertSink("test_token", [12345])
            await alert_sink.set_webhook(
                "https://bot.example.com/telegram/webhook", secret_token="s3cret"
            )

            body = json.loads(route.calls.last.request.content)
            assert body["url"] == "https://bot.example.com/telegram/webhook"
            assert body["secret_token"] == "s3cret"
            await alert_sink.close()

    @pytest.mark.asyncio
    async def test_set_webhook_rejected(self):
        with respx.mock as respx_mock:
            respx_mock.post("https://api.telegram.org/bottest_token/setWebhook").mock(
                return_value=httpx.Response(
                    200, json={"ok": False, "description": "bad webhook: HTTPS required"}
                )
            )

            alert_sink = TelegramAlertSink("test_token", [12345])

            with pytest.raises(RuntimeError, match="HTTPS required"):
                await alert_sink.set_webhook("http://bot.example.com/telegram/webhook")
            await alert_sink.close()


def test_status_provider_protocol():
    assert isinstance(MockStatusProvider({}), StatusProvider)

"""Read-only HTTP health endpoint, plus the Telegram webhook when enabled."""

import asyncio

import structlog
from aiohttp import web

from ..alerts.telegram import TelegramCommandHandler
from ..core.session import BotSession

logger = structlog.get_logger(__name__)

WEBHOOK_PATH = "/telegram/webhook"
SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def create_health_app(
    session: BotSession,
    commands: TelegramCommandHandler | None = None,
    webhook_secret: str | None = None,
) -> web.Application:
    """Build the aiohttp application serving ``GET /health``.

    Args:
        session: Session whose ``health()`` is served
        commands: When given, ``POST /telegram/webhook`` feeds updates to it
        webhook_secret: Required value of the secret-token header, if any
    """
    updates: set[asyncio.Task] = set()

    async def health(request: web.Request) -> web.Response:
        return web.json_response(session.health())

    async def telegram_webhook(request: web.Request) -> web.Response:
        if webhook_secret and request.headers.get(SECRET_HEADER) != webhook_secret:
            logger.warning("Rejected webhook update", reason="bad secret token")
            return web.Response(status=401)

        try:
            update = await request.json()
        except ValueError:
            return web.Response(status=400)

        if isinstance(update, dict):
            # /analyze can outlast Telegram's delivery timeout
            task = asyncio.create_task(commands.handle_update(update))
            updates.add(task)
            task.add_done_callback(updates.discard)
        return web.Response(status=200)

    async def drain_updates(app: web.Application) -> None:
        for task in list(updates):
            task.cancel()
        await asyncio.gather(*updates, return_exceptions=True)

    app = web.Application()
    app.router.add_get("/health", health)
    if commands is not None:
        app.router.add_post(WEBHOOK_PATH, telegram_webhook)
        app.on_cleanup.append(drain_updates)
    return app


class HealthServer:
    """Runs the health application on its own site."""

    def __init__(
        self,
        session: BotSession,
        host: str = "0.0.0.0",
        port: int = 8080,
        commands: TelegramCommandHandler | None = None,
        webhook_secret: str | None = None,
    ) -> None:
        self.app = create_health_app(session, commands, webhook_secret)
        self.host = host
        self.port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        if self._runner is not None:
            return
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Health endpoint started", host=self.host, port=self.port)

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("Health endpoint stopped")

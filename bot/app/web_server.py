import logging
from typing import Any, Dict

from aiohttp import web

from config.settings import Settings
from bot.services.payment_webhook_service import payment_webhook_route


async def health_route(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def payment_success_route(request: web.Request) -> web.Response:
    """Return page for CloudPayments: sends the user back to the bot."""
    settings: Settings = request.app["settings"]
    if settings.BOT_USERNAME:
        raise web.HTTPFound(f"https://t.me/{settings.BOT_USERNAME.lstrip('@')}")
    return web.Response(
        text="Оплата принята. Вернитесь в Telegram-бот.",
        content_type="text/plain",
    )


def build_web_app(settings: Settings, services: Dict[str, Any]) -> web.Application:
    """
    Create aiohttp application with payment webhook routes.

    Args:
        settings: Application settings
        services: Services dict from build_core_services

    Returns:
        Configured web.Application
    """
    app = web.Application()
    app["settings"] = settings
    app["payment_webhook_service"] = services["payment_webhook_service"]
    app["cloudpayments_service"] = services["cloudpayments_service"]

    app.router.add_post(settings.PAYMENT_WEBHOOK_PATH, payment_webhook_route)
    app.router.add_get("/health", health_route)
    app.router.add_get("/payment/success", payment_success_route)
    return app


async def start_web_server(settings: Settings, services: Dict[str, Any]) -> web.AppRunner:
    app = build_web_app(settings, services)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=settings.WEB_SERVER_HOST, port=settings.WEB_SERVER_PORT)
    await site.start()
    logging.info(
        f"Web server started on {settings.WEB_SERVER_HOST}:{settings.WEB_SERVER_PORT} "
        f"(payment webhook: {settings.PAYMENT_WEBHOOK_PATH})"
    )
    return runner

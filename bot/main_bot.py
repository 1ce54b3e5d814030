import logging

from aiogram import Bot
from aiogram.types import BotCommand

from config.settings import Settings
from bot.app.controllers.dispatcher_controller import build_dispatcher
from bot.app.factories.build_services import build_core_services
from bot.app.web_server import start_web_server
from bot.utils.graceful_shutdown import GracefulShutdownManager

BOT_COMMANDS = [
    BotCommand(command="start", description="Начать работу с ботом"),
    BotCommand(command="help", description="Справка"),
    BotCommand(command="plans", description="Посмотреть тарифы"),
    BotCommand(command="my_subscription", description="Моя подписка"),
    BotCommand(command="buy", description="Купить подписку"),
]


def setup_logging(settings: Settings):
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )


async def set_bot_commands(bot: Bot):
    try:
        await bot.set_my_commands(BOT_COMMANDS)
    except Exception as e:
        logging.warning(f"Failed to set bot commands menu: {e}")


async def run_bot(settings: Settings):
    setup_logging(settings)

    dp, bot = build_dispatcher(settings)
    services = build_core_services(settings, bot)
    # Сервисы доступны в хендлерах по имени аргумента
    dp.workflow_data.update(services)

    if not settings.BOT_USERNAME:
        try:
            me = await bot.get_me()
            settings.BOT_USERNAME = me.username
        except Exception as e:
            logging.warning(f"Failed to resolve bot username: {e}")

    await set_bot_commands(bot)

    web_runner = await start_web_server(settings, services)
    lifecycle_service = services["lifecycle_service"]
    lifecycle_service.start()

    shutdown_manager = GracefulShutdownManager(timeout=settings.SHUTDOWN_TIMEOUT_SECONDS)

    async def stop_lifecycle():
        await lifecycle_service.stop()

    async def stop_web_server():
        await web_runner.cleanup()

    async def close_payment_client():
        await services["cloudpayments_service"].close()

    async def close_bot_session():
        await bot.session.close()

    shutdown_manager.register_shutdown_handler(stop_lifecycle)
    shutdown_manager.register_shutdown_handler(stop_web_server)
    shutdown_manager.register_shutdown_handler(close_payment_client)
    shutdown_manager.register_shutdown_handler(close_bot_session)

    logging.info("Starting bot polling...")
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await shutdown_manager.initiate_shutdown("polling stopped")

import logging
from typing import Tuple

from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

from config.settings import Settings
from bot.handlers.user import user_router_aggregate


def build_dispatcher(settings: Settings) -> Tuple[Dispatcher, Bot]:
    storage = MemoryStorage()
    logging.info("FSM Storage: Using MemoryStorage (state will be lost on restart)")

    default_props = DefaultBotProperties(parse_mode=ParseMode.HTML)
    bot = Bot(token=settings.BOT_TOKEN, default=default_props)

    dp = Dispatcher(storage=storage, settings=settings, bot_instance=bot)
    # Users who already saw the welcome message (in-memory, reset on restart)
    dp["welcome_shown_users"] = set()

    dp.include_router(user_router_aggregate)
    return dp, bot

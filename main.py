import asyncio
import logging

from config.settings import get_settings
from bot.main_bot import run_bot


def main():
    settings = get_settings()
    try:
        asyncio.run(run_bot(settings))
    except (KeyboardInterrupt, SystemExit):
        logging.info("Bot stopped")


if __name__ == "__main__":
    main()

import logging
from typing import Set

from aiogram import Router, F, types
from aiogram.filters import Command, CommandStart

from bot.keyboards.inline.user_keyboards import (
    START_COMMAND,
    get_start_keyboard,
    get_subscribe_keyboard,
)
from bot.utils import message_texts

router = Router(name="user_start_router")


async def send_welcome(message: types.Message, welcome_shown_users: Set[int], user_id: int):
    """Полное приветствие с кнопкой оформления подписки"""
    welcome_shown_users.add(user_id)
    await message.answer(message_texts.WELCOME_FULL, reply_markup=get_subscribe_keyboard())


@router.message(CommandStart())
async def start_command_handler(message: types.Message, welcome_shown_users: Set[int]):
    logging.info(f"User {message.from_user.id} started the bot")
    await send_welcome(message, welcome_shown_users, message.from_user.id)


@router.callback_query(F.data == START_COMMAND)
async def start_button_handler(callback: types.CallbackQuery, welcome_shown_users: Set[int]):
    await send_welcome(callback.message, welcome_shown_users, callback.from_user.id)
    await callback.answer()


@router.message(Command("help"))
async def help_command_handler(message: types.Message):
    await message.answer(message_texts.HELP_TEXT)


async def show_short_welcome(message: types.Message, welcome_shown_users: Set[int]) -> bool:
    """
    Короткое приветствие при первом сообщении пользователя без команды.

    Returns:
        True если приветствие было показано
    """
    user_id = message.from_user.id
    if user_id in welcome_shown_users:
        return False
    welcome_shown_users.add(user_id)
    await message.answer(message_texts.WELCOME_SHORT, reply_markup=get_start_keyboard())
    return True

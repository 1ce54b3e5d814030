from typing import Iterable

from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder, InlineKeyboardButton

from db.models import SubscriptionPlan

# callback_data, общие для хендлеров и уведомлений lifecycle job
SHOW_BUY_OPTIONS = "show_buy_options"
START_COMMAND = "start_command"
CANCEL_PURCHASE = "cancel_purchase"
CHECK_PAYMENT = "check_payment"
BUY_PREFIX = "buy:"
CONFIRM_BUY_PREFIX = "confirm_buy:"


def format_plan_button(plan: SubscriptionPlan) -> str:
    return f"{plan.name} - {plan.price}₽"


def get_start_keyboard() -> InlineKeyboardMarkup:
    """Кнопка Старт под приветствием"""
    builder = InlineKeyboardBuilder()
    builder.row(InlineKeyboardButton(text="Старт / Start", callback_data=START_COMMAND))
    return builder.as_markup()


def get_subscribe_keyboard() -> InlineKeyboardMarkup:
    """Кнопка перехода к выбору тарифа"""
    builder = InlineKeyboardBuilder()
    builder.row(InlineKeyboardButton(text="ОФОРМИТЬ ПОДПИСКУ", callback_data=SHOW_BUY_OPTIONS))
    return builder.as_markup()


def get_renew_keyboard() -> InlineKeyboardMarkup:
    """Кнопка продления в напоминаниях об окончании подписки"""
    builder = InlineKeyboardBuilder()
    builder.row(InlineKeyboardButton(text="Продлить подписку", callback_data=SHOW_BUY_OPTIONS))
    return builder.as_markup()


def get_plans_keyboard(plans: Iterable[SubscriptionPlan]) -> InlineKeyboardMarkup:
    """Клавиатура со списком тарифов"""
    builder = InlineKeyboardBuilder()
    for plan in plans:
        builder.row(
            InlineKeyboardButton(
                text=format_plan_button(plan),
                callback_data=f"{BUY_PREFIX}{plan.id}",
            )
        )
    return builder.as_markup()


def get_purchase_confirmation_keyboard(plan_id: str) -> InlineKeyboardMarkup:
    """Клавиатура подтверждения покупки"""
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="✅ Подтвердить и перейти к оплате",
            callback_data=f"{CONFIRM_BUY_PREFIX}{plan_id}",
        )
    )
    builder.row(InlineKeyboardButton(text="❌ Отмена", callback_data=CANCEL_PURCHASE))
    return builder.as_markup()


def get_payment_link_keyboard(payment_url: str) -> InlineKeyboardMarkup:
    """Ссылка на оплату и проверка статуса после оплаты"""
    builder = InlineKeyboardBuilder()
    builder.row(InlineKeyboardButton(text="💳 Перейти к оплате", url=payment_url))
    builder.row(InlineKeyboardButton(text="🔄 Я оплатил", callback_data=CHECK_PAYMENT))
    return builder.as_markup()


def get_invite_keyboard(invite_link: str) -> InlineKeyboardMarkup:
    """Кнопка входа в закрытую группу"""
    builder = InlineKeyboardBuilder()
    builder.row(InlineKeyboardButton(text="🔐 Войти в закрытую группу", url=invite_link))
    return builder.as_markup()

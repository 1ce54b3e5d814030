import logging
from typing import Set

from aiogram import Router, F, types
from aiogram.filters import Command

from config.settings import Settings
from bot.handlers.user.start import show_short_welcome
from bot.keyboards.inline.user_keyboards import (
    BUY_PREFIX,
    CANCEL_PURCHASE,
    CHECK_PAYMENT,
    CONFIRM_BUY_PREFIX,
    SHOW_BUY_OPTIONS,
    get_payment_link_keyboard,
    get_plans_keyboard,
    get_purchase_confirmation_keyboard,
    get_subscribe_keyboard,
)
from bot.services.cloudpayments_service import CloudPaymentsService
from bot.services.payment_webhook_service import PaymentWebhookService
from bot.services.subscription.core import SubscriptionCoreService
from bot.services.subscription.errors import PaymentGatewayError
from bot.services.subscription.plans import PlanCatalog
from bot.utils import message_texts

router = Router(name="user_subscription_router")

BUY_KEYWORDS = frozenset({"купить", "buy", "подписка"})


def current_subscription_text(
    user_id: int,
    subscription_service: SubscriptionCoreService,
    plan_catalog: PlanCatalog,
    settings: Settings,
) -> str:
    """Описание активной подписки или сообщение о ее отсутствии"""
    subscription = subscription_service.query(user_id)
    if not subscription:
        return message_texts.NO_ACTIVE_SUBSCRIPTION
    return message_texts.subscription_info(
        subscription,
        plan_catalog.plan_name(subscription.plan_id),
        settings.lifecycle_tz,
    )


async def show_buy_options(message: types.Message, plan_catalog: PlanCatalog):
    await message.answer(
        message_texts.CHOOSE_PLAN,
        reply_markup=get_plans_keyboard(plan_catalog.all_plans()),
    )


# ==================== Commands ====================

@router.message(Command("plans"))
async def plans_command_handler(message: types.Message, plan_catalog: PlanCatalog):
    await message.answer(
        message_texts.plans_overview(plan_catalog.all_plans()),
        reply_markup=get_subscribe_keyboard(),
    )


@router.message(Command("buy"))
async def buy_command_handler(message: types.Message, plan_catalog: PlanCatalog):
    plans = plan_catalog.all_plans()
    await message.answer(
        message_texts.plans_overview(plans, title=message_texts.CHOOSE_PLAN),
        reply_markup=get_plans_keyboard(plans),
    )


@router.message(Command("my_subscription"))
async def my_subscription_command_handler(
    message: types.Message,
    subscription_service: SubscriptionCoreService,
    plan_catalog: PlanCatalog,
    settings: Settings,
):
    await message.answer(
        current_subscription_text(message.from_user.id, subscription_service, plan_catalog, settings)
    )


# ==================== Purchase flow ====================

@router.callback_query(F.data == SHOW_BUY_OPTIONS)
async def show_buy_options_callback(callback: types.CallbackQuery, plan_catalog: PlanCatalog):
    await show_buy_options(callback.message, plan_catalog)
    await callback.answer()


@router.callback_query(F.data.startswith(BUY_PREFIX))
async def select_plan_callback(
    callback: types.CallbackQuery,
    subscription_service: SubscriptionCoreService,
    plan_catalog: PlanCatalog,
    settings: Settings,
):
    """Подтверждение выбранного тарифа"""
    plan_id = callback.data[len(BUY_PREFIX):]
    plan = plan_catalog.get_plan_by_id(plan_id)
    if not plan:
        await callback.message.answer(message_texts.PLAN_NOT_FOUND)
        await callback.answer()
        return

    user_id = callback.from_user.id
    if subscription_service.has_active_subscription(user_id):
        info = current_subscription_text(user_id, subscription_service, plan_catalog, settings)
        await callback.message.answer(message_texts.already_subscribed(info))
        await callback.answer()
        return

    await callback.message.answer(
        message_texts.purchase_confirmation(plan),
        reply_markup=get_purchase_confirmation_keyboard(plan.id),
    )
    await callback.answer()


@router.callback_query(F.data.startswith(CONFIRM_BUY_PREFIX))
async def confirm_purchase_callback(
    callback: types.CallbackQuery,
    subscription_service: SubscriptionCoreService,
    plan_catalog: PlanCatalog,
    cloudpayments_service: CloudPaymentsService,
    settings: Settings,
):
    """Создание ссылки на оплату"""
    plan_id = callback.data[len(CONFIRM_BUY_PREFIX):]
    plan = plan_catalog.get_plan_by_id(plan_id)
    if not plan:
        await callback.message.answer(message_texts.PLAN_NOT_FOUND)
        await callback.answer()
        return

    user_id = callback.from_user.id
    if subscription_service.has_active_subscription(user_id):
        info = current_subscription_text(user_id, subscription_service, plan_catalog, settings)
        await callback.message.answer(message_texts.already_subscribed(info))
        await callback.answer()
        return

    try:
        payment_url = await cloudpayments_service.create_payment_link(
            user_id, plan, callback.message.chat.id
        )
    except PaymentGatewayError as e:
        logging.error(f"Payment link for user {user_id} (plan {plan.id}) not created: {e}")
        await callback.message.answer(message_texts.PAYMENT_LINK_FAILED)
        await callback.answer()
        return

    await callback.message.answer(
        message_texts.payment_link_message(plan),
        reply_markup=get_payment_link_keyboard(payment_url),
    )
    await callback.answer()


@router.callback_query(F.data == CANCEL_PURCHASE)
async def cancel_purchase_callback(callback: types.CallbackQuery):
    await callback.message.answer(message_texts.PURCHASE_CANCELLED)
    await callback.answer()


@router.callback_query(F.data == CHECK_PAYMENT)
async def check_payment_callback(
    callback: types.CallbackQuery,
    subscription_service: SubscriptionCoreService,
    plan_catalog: PlanCatalog,
    payment_webhook_service: PaymentWebhookService,
    settings: Settings,
):
    """Проверка, активировалась ли подписка после оплаты"""
    user_id = callback.from_user.id
    subscription = subscription_service.query(user_id)
    if not subscription:
        await callback.message.answer(message_texts.PAYMENT_NOT_FOUND)
        await callback.answer()
        return

    info = message_texts.subscription_info(
        subscription, plan_catalog.plan_name(subscription.plan_id), settings.lifecycle_tz
    )
    await callback.message.answer(info)
    await payment_webhook_service.send_private_group_invite(user_id)
    await callback.answer()


# ==================== Free text ====================

@router.message(F.text, ~F.text.startswith("/"))
async def text_message_handler(
    message: types.Message,
    plan_catalog: PlanCatalog,
    welcome_shown_users: Set[int],
):
    if await show_short_welcome(message, welcome_shown_users):
        return
    if message.text.strip().lower() in BUY_KEYWORDS:
        await show_buy_options(message, plan_catalog)

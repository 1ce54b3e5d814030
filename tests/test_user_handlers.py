from unittest.mock import AsyncMock, MagicMock

import pytest

from bot.handlers.user import start as start_handlers
from bot.handlers.user import subscription as subscription_handlers
from bot.services.subscription.errors import PaymentGatewayError
from bot.utils import message_texts


def _message(text="", user_id=42):
    message = MagicMock()
    message.text = text
    message.from_user.id = user_id
    message.chat.id = user_id
    message.answer = AsyncMock()
    return message


def _callback(data, user_id=42):
    callback = MagicMock()
    callback.data = data
    callback.from_user.id = user_id
    callback.message = _message(user_id=user_id)
    callback.answer = AsyncMock()
    return callback


def _answer_text(message) -> str:
    return message.answer.await_args.args[0]


@pytest.mark.asyncio
async def test_start_shows_full_welcome():
    shown = set()
    message = _message("/start")

    await start_handlers.start_command_handler(message, shown)

    assert _answer_text(message) == message_texts.WELCOME_FULL
    assert 42 in shown


@pytest.mark.asyncio
async def test_first_free_text_shows_short_welcome_once(plan_catalog):
    shown = set()
    message = _message("привет")

    await subscription_handlers.text_message_handler(message, plan_catalog, shown)
    assert _answer_text(message) == message_texts.WELCOME_SHORT

    message.answer.reset_mock()
    await subscription_handlers.text_message_handler(message, plan_catalog, shown)
    message.answer.assert_not_called()


@pytest.mark.asyncio
async def test_buy_keyword_shows_plans(plan_catalog):
    message = _message("Купить")

    await subscription_handlers.text_message_handler(message, plan_catalog, {42})

    assert _answer_text(message) == message_texts.CHOOSE_PLAN
    markup = message.answer.await_args.kwargs["reply_markup"]
    assert [row[0].callback_data for row in markup.inline_keyboard] == [
        "buy:1_month",
        "buy:3_months",
        "buy:6_months",
    ]


@pytest.mark.asyncio
async def test_my_subscription_without_subscription(core, plan_catalog, settings):
    message = _message("/my_subscription")

    await subscription_handlers.my_subscription_command_handler(message, core, plan_catalog, settings)

    assert _answer_text(message) == message_texts.NO_ACTIVE_SUBSCRIPTION


@pytest.mark.asyncio
async def test_select_plan_shows_confirmation(core, plan_catalog, settings):
    callback = _callback("buy:3_months")

    await subscription_handlers.select_plan_callback(callback, core, plan_catalog, settings)

    text = _answer_text(callback.message)
    assert "3 месяца" in text
    assert "1800₽" in text
    markup = callback.message.answer.await_args.kwargs["reply_markup"]
    assert markup.inline_keyboard[0][0].callback_data == "confirm_buy:3_months"
    callback.answer.assert_awaited_once()


@pytest.mark.asyncio
async def test_select_unknown_plan(core, plan_catalog, settings):
    callback = _callback("buy:lifetime")

    await subscription_handlers.select_plan_callback(callback, core, plan_catalog, settings)

    assert _answer_text(callback.message) == message_texts.PLAN_NOT_FOUND


@pytest.mark.asyncio
async def test_purchase_refused_with_active_subscription(core, plan_catalog, settings, payment_client):
    core.activate(42, "1_month")
    callback = _callback("confirm_buy:6_months")

    await subscription_handlers.confirm_purchase_callback(callback, core, plan_catalog, payment_client, settings)

    assert "уже есть активная подписка" in _answer_text(callback.message)
    payment_client.create_payment_link.assert_not_called()


@pytest.mark.asyncio
async def test_confirm_purchase_sends_payment_link(core, plan_catalog, settings, payment_client):
    callback = _callback("confirm_buy:1_month")

    await subscription_handlers.confirm_purchase_callback(callback, core, plan_catalog, payment_client, settings)

    payment_client.create_payment_link.assert_awaited_once()
    markup = callback.message.answer.await_args.kwargs["reply_markup"]
    assert markup.inline_keyboard[0][0].url == "https://pay.example/order/1"
    assert markup.inline_keyboard[1][0].callback_data == "check_payment"


@pytest.mark.asyncio
async def test_confirm_purchase_gateway_failure(core, plan_catalog, settings, payment_client):
    payment_client.create_payment_link.side_effect = PaymentGatewayError("down")
    callback = _callback("confirm_buy:1_month")

    await subscription_handlers.confirm_purchase_callback(callback, core, plan_catalog, payment_client, settings)

    assert _answer_text(callback.message) == message_texts.PAYMENT_LINK_FAILED


@pytest.mark.asyncio
async def test_check_payment_before_webhook(core, plan_catalog, settings, webhook_service, messaging):
    callback = _callback("check_payment")

    await subscription_handlers.check_payment_callback(callback, core, plan_catalog, webhook_service, settings)

    assert _answer_text(callback.message) == message_texts.PAYMENT_NOT_FOUND
    assert core.get_record(42) is None
    messaging.create_restricted_invite.assert_not_called()


@pytest.mark.asyncio
async def test_check_payment_after_webhook_resends_invite(core, plan_catalog, settings, webhook_service, messaging):
    core.activate(42, "1_month", "tx-1")
    callback = _callback("check_payment")

    await subscription_handlers.check_payment_callback(callback, core, plan_catalog, webhook_service, settings)

    assert "1 месяц" in _answer_text(callback.message)
    messaging.create_restricted_invite.assert_awaited_once()

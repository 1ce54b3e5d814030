"""
Payment Webhook Service

Обработка уведомлений CloudPayments об оплате.

Ответственность:
- Разбор уведомления через PaymentReconciler
- Опциональная проверка транзакции через API CloudPayments
- Защита от повторной обработки того же платежа
- Активация подписки под блокировкой пользователя
- Сообщение об успешной оплате и одноразовая ссылка в закрытую группу
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl

from aiohttp import web

from config.settings import Settings
from bot.keyboards.inline.user_keyboards import get_invite_keyboard
from bot.services.cloudpayments_service import CloudPaymentsService
from bot.services.messaging_service import TelegramMessagingService
from bot.services.payment_reconciler import PaymentReconciler, ReconciliationOutcome
from bot.services.subscription.core import SubscriptionCoreService
from bot.services.subscription.errors import PlanNotFound, ReconciliationError
from bot.services.subscription.plans import PlanCatalog
from bot.utils import message_texts
from bot.utils.user_locks import UserLockRegistry
from db.models import UserSubscription

MESSAGE_ACTIVATED = "Подписка успешно активирована"
MESSAGE_DUPLICATE = "Платеж уже обработан"
MESSAGE_NOT_PROCESSED = "Платеж не обработан"
MESSAGE_FAILED = "Ошибка при обработке платежа"


@dataclass
class WebhookResult:
    success: bool
    message: str
    outcome: Optional[ReconciliationOutcome] = None
    user_id: Optional[int] = None
    subscription: Optional[UserSubscription] = None

    def to_response_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.success:
            # CloudPayments считает уведомление принятым только при code == 0
            body["code"] = 0
        return body


class PaymentWebhookService:
    def __init__(
        self,
        settings: Settings,
        reconciler: PaymentReconciler,
        subscription_service: SubscriptionCoreService,
        plan_catalog: PlanCatalog,
        messaging_service: TelegramMessagingService,
        user_locks: UserLockRegistry,
        payment_service: Optional[CloudPaymentsService] = None,
    ):
        self.settings = settings
        self.reconciler = reconciler
        self.subscription_service = subscription_service
        self.plan_catalog = plan_catalog
        self.messaging_service = messaging_service
        self.user_locks = user_locks
        self.payment_service = payment_service

    async def handle_notification(self, payload: Mapping[str, Any]) -> WebhookResult:
        """
        Process a payment notification end to end.

        Args:
            payload: Parsed webhook body

        Returns:
            WebhookResult; success is True for activated and duplicate payments
        """
        try:
            result = self.reconciler.reconcile(payload)
        except ReconciliationError as e:
            logging.error(f"Payment notification cannot be reconciled: {e}")
            return WebhookResult(success=False, message=MESSAGE_NOT_PROCESSED)

        if not result.accepted:
            return WebhookResult(
                success=False,
                message=MESSAGE_NOT_PROCESSED,
                outcome=result.outcome,
                user_id=result.user_id,
            )

        if self.settings.CLOUDPAYMENTS_VERIFY_TRANSACTIONS and self.payment_service:
            verified = bool(result.payment_id) and await self.payment_service.verify_payment(result.payment_id)
            if not verified:
                logging.warning(
                    f"SECURITY: Payment {result.payment_id} for user {result.user_id} "
                    f"not confirmed by CloudPayments API"
                )
                return WebhookResult(success=False, message=MESSAGE_NOT_PROCESSED, user_id=result.user_id)

        user_id = result.user_id
        async with self.user_locks.lock(user_id):
            if self.subscription_service.is_duplicate_payment(user_id, result.payment_id):
                logging.info(f"Payment {result.payment_id} for user {user_id} already applied, skipping")
                return WebhookResult(
                    success=True,
                    message=MESSAGE_DUPLICATE,
                    outcome=ReconciliationOutcome.DUPLICATE,
                    user_id=user_id,
                )

            try:
                subscription = self.subscription_service.activate(user_id, result.plan_id, result.payment_id)
            except PlanNotFound as e:
                logging.error(f"Payment {result.payment_id} for user {user_id} references unknown plan: {e}")
                return WebhookResult(success=False, message=MESSAGE_NOT_PROCESSED, user_id=user_id)
            except OSError as e:
                logging.error(f"Failed to persist subscription for user {user_id}: {e}", exc_info=True)
                return WebhookResult(success=False, message=MESSAGE_FAILED, user_id=user_id)

            plan_name = self.plan_catalog.plan_name(subscription.plan_id)
            await self.messaging_service.notify(
                user_id,
                message_texts.payment_successful(plan_name, subscription.end_date, self.settings.lifecycle_tz),
            )
            await self.send_private_group_invite(user_id)

        return WebhookResult(
            success=True,
            message=MESSAGE_ACTIVATED,
            outcome=ReconciliationOutcome.ACCEPTED,
            user_id=user_id,
            subscription=subscription,
        )

    async def send_private_group_invite(self, user_id: int) -> bool:
        """
        Send the user a single-use invite link to the private group.

        Returns:
            True if the link was created and delivered
        """
        group_id = self.settings.PRIVATE_CHANNEL_ID
        if group_id is None:
            logging.debug(f"Private group not configured, invite for user {user_id} skipped")
            return False

        expire_hours = self.settings.INVITE_LINK_EXPIRE_HOURS
        invite_link = await self.messaging_service.create_restricted_invite(
            group_id, single_use=True, expire_hours=expire_hours
        )
        if not invite_link:
            logging.error(f"Invite link for user {user_id} was not created")
            return False

        return await self.messaging_service.notify(
            user_id,
            message_texts.private_group_invite(expire_hours),
            get_invite_keyboard(invite_link),
        )


def parse_webhook_body(raw_body: bytes, content_type: str) -> Optional[Dict[str, Any]]:
    """CloudPayments sends notifications as form-urlencoded or JSON."""
    try:
        text = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        return None

    if content_type == "application/x-www-form-urlencoded":
        return dict(parse_qsl(text, keep_blank_values=True))

    try:
        data = json.loads(text) if text else None
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


async def payment_webhook_route(request: web.Request) -> web.Response:
    """
    AIOHTTP route handler for CloudPayments payment notifications.

    SECURITY NOTE: enable CLOUDPAYMENTS_VERIFY_SIGNATURE in production so that
    only requests signed with the API secret are accepted.
    """
    settings: Settings = request.app["settings"]
    webhook_service: PaymentWebhookService = request.app["payment_webhook_service"]
    payment_service: CloudPaymentsService = request.app["cloudpayments_service"]

    raw_body = await request.read()

    if settings.CLOUDPAYMENTS_VERIFY_SIGNATURE and not payment_service.verify_signature(raw_body, request.headers):
        logging.warning("SECURITY: CloudPayments webhook with invalid signature rejected")
        return web.json_response({"success": False, "message": "invalid_signature"}, status=401)

    payload = parse_webhook_body(raw_body, request.content_type)
    if payload is None:
        logging.warning("CloudPayments webhook with malformed body")
        return web.json_response({"success": False, "message": "bad_request"}, status=400)

    try:
        result = await webhook_service.handle_notification(payload)
    except Exception as e:
        logging.error(f"Error processing CloudPayments webhook: {e}", exc_info=True)
        return web.json_response({"success": False, "message": "internal_error"}, status=500)

    return web.json_response(result.to_response_body(), status=200 if result.success else 400)

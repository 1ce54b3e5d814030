import logging
from typing import Any, Dict

from aiogram import Bot

from config.settings import Settings
from bot.services.cloudpayments_service import CloudPaymentsService
from bot.services.messaging_service import TelegramMessagingService
from bot.services.payment_reconciler import PaymentReconciler
from bot.services.payment_webhook_service import PaymentWebhookService
from bot.services.subscription.core import SubscriptionCoreService
from bot.services.subscription.lifecycle import SubscriptionLifecycleService
from bot.services.subscription.plans import PlanCatalog
from bot.utils.user_locks import UserLockRegistry
from db.subscription_store import SubscriptionStore


def build_core_services(settings: Settings, bot: Bot) -> Dict[str, Any]:
    """
    Build and wire all core services with explicit dependency injection.

    Args:
        settings: Application settings
        bot: Telegram bot instance

    Returns:
        Dictionary of initialized services; keys are also the handler argument names
    """
    store = SubscriptionStore(settings.SUBSCRIPTIONS_DB_PATH)
    plan_catalog = PlanCatalog.from_settings(settings)
    subscription_service = SubscriptionCoreService(store, plan_catalog)
    user_locks = UserLockRegistry()
    messaging_service = TelegramMessagingService(bot)
    cloudpayments_service = CloudPaymentsService(settings)
    payment_reconciler = PaymentReconciler()

    payment_webhook_service = PaymentWebhookService(
        settings=settings,
        reconciler=payment_reconciler,
        subscription_service=subscription_service,
        plan_catalog=plan_catalog,
        messaging_service=messaging_service,
        user_locks=user_locks,
        payment_service=cloudpayments_service,
    )
    lifecycle_service = SubscriptionLifecycleService(
        settings=settings,
        subscription_service=subscription_service,
        plan_catalog=plan_catalog,
        messaging_service=messaging_service,
        user_locks=user_locks,
    )

    logging.info(
        f"Core services built: {len(plan_catalog.all_plans())} plans, "
        f"store at {store.path}"
    )

    return {
        "subscription_store": store,
        "plan_catalog": plan_catalog,
        "subscription_service": subscription_service,
        "user_locks": user_locks,
        "messaging_service": messaging_service,
        "cloudpayments_service": cloudpayments_service,
        "payment_reconciler": payment_reconciler,
        "payment_webhook_service": payment_webhook_service,
        "lifecycle_service": lifecycle_service,
    }

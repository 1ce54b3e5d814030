"""
Shared pytest fixtures for subscription bot tests.

Telegram and CloudPayments are never contacted: the messaging gateway and the
payment client are replaced by AsyncMock objects.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.settings import Settings
from bot.services.messaging_service import TelegramMessagingService
from bot.services.payment_reconciler import PaymentReconciler
from bot.services.payment_webhook_service import PaymentWebhookService
from bot.services.subscription.core import SubscriptionCoreService
from bot.services.subscription.lifecycle import SubscriptionLifecycleService
from bot.services.subscription.plans import PlanCatalog
from bot.utils.user_locks import UserLockRegistry
from db.subscription_store import SubscriptionStore

T0 = datetime(2025, 3, 1, 0, 0, tzinfo=timezone.utc)
PRIVATE_GROUP_ID = -1001234567890
INVITE_LINK = "https://t.me/+single-use-invite"


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime):
        self.now = now


def make_settings(**overrides) -> Settings:
    values = {
        "BOT_TOKEN": "123456:TEST",
        "BOT_USERNAME": "element_uspeha_bot",
        "PRIVATE_CHANNEL_ID": PRIVATE_GROUP_ID,
        "LIFECYCLE_TIMEZONE": "UTC",
        "CLOUDPAYMENTS_PUBLIC_ID": "pk_test",
        "CLOUDPAYMENTS_API_SECRET": "secret",
        "CLOUDPAYMENTS_RETURN_URL": "https://example.com/payment/success",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "data" / "subscriptions.json"


@pytest.fixture
def store(store_path) -> SubscriptionStore:
    return SubscriptionStore(store_path)


@pytest.fixture
def plan_catalog() -> PlanCatalog:
    return PlanCatalog()


@pytest.fixture
def core(store, plan_catalog, clock) -> SubscriptionCoreService:
    return SubscriptionCoreService(store, plan_catalog, clock=clock)


@pytest.fixture
def messaging():
    service = MagicMock(spec=TelegramMessagingService)
    service.notify = AsyncMock(return_value=True)
    service.remove_member = AsyncMock(return_value=True)
    service.create_restricted_invite = AsyncMock(return_value=INVITE_LINK)
    return service


@pytest.fixture
def user_locks() -> UserLockRegistry:
    return UserLockRegistry()


@pytest.fixture
def lifecycle(settings, core, plan_catalog, messaging, user_locks, clock) -> SubscriptionLifecycleService:
    return SubscriptionLifecycleService(
        settings=settings,
        subscription_service=core,
        plan_catalog=plan_catalog,
        messaging_service=messaging,
        user_locks=user_locks,
        clock=clock,
    )


@pytest.fixture
def payment_client():
    client = MagicMock()
    client.verify_payment = AsyncMock(return_value=True)
    client.verify_signature = MagicMock(return_value=True)
    client.create_payment_link = AsyncMock(return_value="https://pay.example/order/1")
    client.close = AsyncMock()
    return client


@pytest.fixture
def webhook_service(settings, core, plan_catalog, messaging, user_locks, payment_client) -> PaymentWebhookService:
    return PaymentWebhookService(
        settings=settings,
        reconciler=PaymentReconciler(),
        subscription_service=core,
        plan_catalog=plan_catalog,
        messaging_service=messaging,
        user_locks=user_locks,
        payment_service=payment_client,
    )

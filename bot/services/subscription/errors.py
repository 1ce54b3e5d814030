"""
Subscription domain errors.

Ошибки, которые доходят до вызывающего кода (webhook, покупка через бота).
Ошибки доставки сообщений сюда не входят: messaging service возвращает False,
а lifecycle job повторяет шаг в следующем цикле.
"""

from db.subscription_store import PersistenceCorrupt  # noqa: F401  re-exported


class SubscriptionError(Exception):
    """Base class for subscription domain errors."""


class PlanNotFound(SubscriptionError):
    """Исключение при обращении к несуществующему тарифному плану"""

    def __init__(self, plan_id: str):
        super().__init__(f"Subscription plan '{plan_id}' not found")
        self.plan_id = plan_id


class ReconciliationError(SubscriptionError):
    """Payment notification cannot be turned into an activation."""


class UnresolvedIdentity(ReconciliationError):
    """Neither metadata.userId nor accountId yields a user id."""


class UnresolvedPlan(ReconciliationError):
    """Neither metadata.planId nor invoiceId yields a plan id."""


class PaymentGatewayError(SubscriptionError):
    """Outbound payment gateway call failed (e.g. payment link was not created)."""

"""
Subscription Services Module

Сервисы подписок, разделенные по ответственности:
- plans: неизменяемый каталог тарифов
- core: состояние подписок и его сохранение
- lifecycle: напоминания и процесс истечения
- errors: доменные ошибки
"""

from bot.services.subscription.errors import (
    PersistenceCorrupt,
    PlanNotFound,
    ReconciliationError,
    SubscriptionError,
    UnresolvedIdentity,
    UnresolvedPlan,
)
from bot.services.subscription.helpers import ReminderWindows, SubscriptionActivationHelper
from bot.services.subscription.plans import DEFAULT_PLANS, PlanCatalog
from bot.services.subscription.core import SubscriptionCoreService
from bot.services.subscription.lifecycle import CycleReport, SubscriptionLifecycleService

__all__ = [
    "CycleReport",
    "DEFAULT_PLANS",
    "PersistenceCorrupt",
    "PlanCatalog",
    "PlanNotFound",
    "ReconciliationError",
    "ReminderWindows",
    "SubscriptionActivationHelper",
    "SubscriptionCoreService",
    "SubscriptionError",
    "SubscriptionLifecycleService",
    "UnresolvedIdentity",
    "UnresolvedPlan",
]

import logging
from typing import Dict, Iterable, List, Optional

from bot.services.subscription.errors import PlanNotFound
from db.models import SubscriptionPlan

_COMMON_FEATURES = (
    "Доступ ко всем материалам",
    "Домашние задания",
    "Ответы на вопросы",
    "Чат единомышленников",
)

# Тестовый план за 1₽ включается только через ENABLE_TEST_PLAN
TEST_PLAN = SubscriptionPlan(
    id="test",
    name="🧪 Тест (1₽)",
    description="Тестовая подписка",
    price=1,
    currency="RUB",
    duration_days=1,
    features=("Тестовая подписка", "Для проверки оплаты"),
)

DEFAULT_PLANS = (
    SubscriptionPlan(
        id="1_month",
        name="1 месяц",
        description="Подписка на 1 месяц",
        price=700,
        currency="RUB",
        duration_days=30,
        features=_COMMON_FEATURES,
    ),
    SubscriptionPlan(
        id="3_months",
        name="3 месяца",
        description="Подписка на 3 месяца",
        price=1800,
        currency="RUB",
        duration_days=90,
        features=_COMMON_FEATURES + ("Экономия 300₽",),
    ),
    SubscriptionPlan(
        id="6_months",
        name="6 месяцев",
        description="Подписка на 6 месяцев",
        price=3500,
        currency="RUB",
        duration_days=180,
        features=_COMMON_FEATURES + ("Экономия 700₽",),
    ),
)


class PlanCatalog:
    """Каталог тарифных планов. Фиксируется при старте процесса и не меняется."""

    def __init__(self, plans: Iterable[SubscriptionPlan] = DEFAULT_PLANS):
        self._plans: List[SubscriptionPlan] = list(plans)
        self._by_id: Dict[str, SubscriptionPlan] = {}
        for plan in self._plans:
            if plan.id in self._by_id:
                raise ValueError(f"Duplicate plan id '{plan.id}' in catalog")
            self._by_id[plan.id] = plan

    @classmethod
    def from_settings(cls, settings) -> "PlanCatalog":
        plans = list(DEFAULT_PLANS)
        if settings.ENABLE_TEST_PLAN:
            logging.warning("Test plan is enabled, disable ENABLE_TEST_PLAN in production")
            plans.insert(0, TEST_PLAN)
        return cls(plans)

    def all_plans(self) -> List[SubscriptionPlan]:
        """
        Получить все планы в порядке каталога.

        Returns:
            List[SubscriptionPlan]: Копия списка планов
        """
        return list(self._plans)

    def get_plan_by_id(self, plan_id: str) -> Optional[SubscriptionPlan]:
        """
        Получить план по ID.

        Args:
            plan_id: ID плана

        Returns:
            Optional[SubscriptionPlan]: План или None, если не найден
        """
        plan = self._by_id.get(plan_id)
        if not plan:
            logging.warning(f"Subscription plan '{plan_id}' not found")
        return plan

    def require_plan(self, plan_id: str) -> SubscriptionPlan:
        plan = self.get_plan_by_id(plan_id)
        if plan is None:
            raise PlanNotFound(plan_id)
        return plan

    def plan_name(self, plan_id: str) -> str:
        """Название плана или его ID, если план уже удален из каталога"""
        plan = self._by_id.get(plan_id)
        return plan.name if plan else plan_id

import pytest

from bot.services.subscription.errors import PlanNotFound
from bot.services.subscription.plans import DEFAULT_PLANS, TEST_PLAN, PlanCatalog
from db.models import SubscriptionPlan
from tests.conftest import make_settings


def test_all_plans_in_catalog_order(plan_catalog):
    assert [plan.id for plan in plan_catalog.all_plans()] == ["1_month", "3_months", "6_months"]


def test_all_plans_returns_a_copy(plan_catalog):
    plan_catalog.all_plans().clear()

    assert len(plan_catalog.all_plans()) == len(DEFAULT_PLANS)


def test_get_plan_by_id(plan_catalog):
    plan = plan_catalog.get_plan_by_id("1_month")

    assert plan.price == 700
    assert plan.currency == "RUB"
    assert plan.duration_days == 30


def test_unknown_plan_is_none(plan_catalog):
    assert plan_catalog.get_plan_by_id("lifetime") is None


def test_require_plan_raises_plan_not_found(plan_catalog):
    with pytest.raises(PlanNotFound) as exc_info:
        plan_catalog.require_plan("lifetime")

    assert exc_info.value.plan_id == "lifetime"


def test_plan_name_falls_back_to_id(plan_catalog):
    assert plan_catalog.plan_name("3_months") == "3 месяца"
    assert plan_catalog.plan_name("legacy_plan") == "legacy_plan"


def test_test_plan_enabled_by_settings():
    catalog = PlanCatalog.from_settings(make_settings(ENABLE_TEST_PLAN=True))

    assert catalog.all_plans()[0] is TEST_PLAN
    assert catalog.get_plan_by_id("test").price == 1


def test_test_plan_disabled_by_default(settings):
    assert PlanCatalog.from_settings(settings).get_plan_by_id("test") is None


def test_duplicate_plan_ids_rejected():
    with pytest.raises(ValueError):
        PlanCatalog([DEFAULT_PLANS[0], DEFAULT_PLANS[0]])


def test_plan_requires_positive_price_and_duration():
    with pytest.raises(ValueError):
        SubscriptionPlan(id="free", name="Free", description="", price=0, currency="RUB", duration_days=30)
    with pytest.raises(ValueError):
        SubscriptionPlan(id="zero", name="Zero", description="", price=10, currency="RUB", duration_days=0)

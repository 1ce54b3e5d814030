from datetime import timedelta
from unittest.mock import patch

import pytest

from bot.services.subscription.core import SubscriptionCoreService
from bot.services.subscription.errors import PlanNotFound
from bot.services.subscription.plans import DEFAULT_PLANS, TEST_PLAN, PlanCatalog
from tests.conftest import T0

PROGRESS_FLAGS = (
    "reminder_3_days_sent",
    "reminder_12_hours_sent",
    "expiry_day_notice_sent",
    "expired_message_sent",
    "removed_from_private_group",
    "expired_processed",
)


@pytest.mark.parametrize("plan", [*DEFAULT_PLANS, TEST_PLAN], ids=lambda plan: plan.id)
def test_activate_creates_fresh_record(store, clock, plan):
    core = SubscriptionCoreService(store, PlanCatalog([*DEFAULT_PLANS, TEST_PLAN]), clock=clock)

    subscription = core.activate(42, plan.id, "tx-1")

    assert subscription.user_id == 42
    assert subscription.plan_id == plan.id
    assert subscription.start_date == T0
    assert subscription.end_date - subscription.start_date == timedelta(days=plan.duration_days)
    assert subscription.is_active is True
    assert subscription.payment_id == "tx-1"
    assert not any(getattr(subscription, flag) for flag in PROGRESS_FLAGS)


def test_activate_unknown_plan_raises_and_keeps_state(core):
    core.activate(42, "1_month")

    with pytest.raises(PlanNotFound):
        core.activate(42, "lifetime")

    assert core.get_record(42).plan_id == "1_month"


def test_activate_overwrites_previous_record(core, clock):
    core.activate(42, "1_month", "tx-1")
    core.patch(42, {"reminder_3_days_sent": True, "expired_message_sent": True, "is_active": False})
    clock.advance(days=40)

    subscription = core.activate(42, "3_months", "tx-2")

    assert subscription.plan_id == "3_months"
    assert subscription.start_date == clock.now
    assert subscription.end_date == clock.now + timedelta(days=90)
    assert subscription.is_active is True
    assert subscription.reminder_3_days_sent is False
    assert subscription.expired_message_sent is False
    assert len(core.list_all()) == 1


def test_activation_is_persisted(core, store, plan_catalog, clock):
    core.activate(42, "6_months", "tx-1")

    reloaded = SubscriptionCoreService(store, plan_catalog, clock=clock)

    assert reloaded.get_record(42) == core.get_record(42)


def test_query_returns_active_subscription(core):
    core.activate(42, "1_month")

    assert core.query(42).plan_id == "1_month"
    assert core.has_active_subscription(42)


def test_query_unknown_user(core):
    assert core.query(100500) is None
    assert not core.has_active_subscription(100500)


def test_query_includes_end_date_boundary(core):
    subscription = core.activate(42, "1_month")

    assert core.query(42, now=subscription.end_date) is not None
    assert core.query(42, now=subscription.end_date + timedelta(milliseconds=1)) is None


def test_query_of_stale_record_does_not_mutate(core, store):
    subscription = core.activate(42, "1_month")
    file_before = store.path.read_text(encoding="utf-8")

    assert core.query(42, now=subscription.end_date + timedelta(days=1)) is None

    record = core.get_record(42)
    assert record.is_active is True
    assert record.expired_processed is False
    assert store.path.read_text(encoding="utf-8") == file_before


def test_query_ignores_inactive_record(core):
    core.activate(42, "1_month")
    core.patch(42, {"is_active": False})

    assert core.query(42) is None


def test_patch_merges_fields(core):
    core.activate(42, "1_month", "tx-1")

    patched = core.patch(42, {"reminder_12_hours_sent": True})

    assert patched.reminder_12_hours_sent is True
    assert patched.payment_id == "tx-1"
    assert core.get_record(42).reminder_12_hours_sent is True


def test_patch_without_record_returns_none(core, store):
    assert core.patch(42, {"reminder_12_hours_sent": True}) is None
    assert store.load() == {}


def test_patch_rejects_unknown_fields(core):
    core.activate(42, "1_month")

    with pytest.raises(ValueError):
        core.patch(42, {"reminderSent": True})
    with pytest.raises(ValueError):
        core.patch(42, {"user_id": 43})


def test_list_all_returns_copies(core):
    core.activate(42, "1_month")
    core.activate(43, "3_months")

    snapshot = core.list_all()
    snapshot[0].is_active = False

    assert {s.user_id for s in snapshot} == {42, 43}
    assert all(s.is_active for s in core.list_all())


def test_list_all_includes_expired_records(core, clock):
    core.activate(42, "1_month")
    clock.advance(days=31)

    assert core.query(42) is None
    assert [s.user_id for s in core.list_all()] == [42]


def test_failed_save_leaves_memory_unchanged(core):
    core.activate(42, "1_month", "tx-1")

    with patch.object(core.store, "save", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            core.activate(42, "6_months", "tx-2")

    assert core.get_record(42).plan_id == "1_month"


def test_duplicate_payment_detection(core):
    core.activate(42, "1_month", "tx-1")

    assert core.is_duplicate_payment(42, "tx-1")
    assert not core.is_duplicate_payment(42, "tx-2")
    assert not core.is_duplicate_payment(42, None)
    assert not core.is_duplicate_payment(43, "tx-1")

    core.patch(42, {"is_active": False})
    assert not core.is_duplicate_payment(42, "tx-1")

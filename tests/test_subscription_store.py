import json
from datetime import datetime, timedelta, timezone

from bot.services.subscription.core import SubscriptionCoreService
from db.models import UserSubscription
from db.subscription_store import SubscriptionStore

START = datetime(2025, 3, 1, 12, 30, tzinfo=timezone.utc)


def _subscription(user_id=42, **overrides) -> UserSubscription:
    values = dict(
        user_id=user_id,
        plan_id="1_month",
        start_date=START,
        end_date=START + timedelta(days=30),
        payment_id="tx-1",
    )
    values.update(overrides)
    return UserSubscription(**values)


def test_missing_file_is_created_empty(store_path):
    store = SubscriptionStore(store_path)

    assert store_path.exists()
    assert json.loads(store_path.read_text(encoding="utf-8")) == {"subscriptions": []}
    assert store.load() == {}


def test_empty_file_loads_as_empty_mapping(store_path):
    store = SubscriptionStore(store_path)
    store_path.write_text("", encoding="utf-8")

    assert store.load() == {}


def test_save_and_load_preserve_all_fields(store):
    subscription = _subscription(
        reminder_3_days_sent=True,
        expired_message_sent=True,
        removed_from_private_group=True,
    )

    store.save({42: subscription})
    loaded = store.load()

    assert loaded == {42: subscription}
    assert loaded[42].end_date.tzinfo is not None


def test_file_uses_camel_case_schema(store, store_path):
    store.save([_subscription(payment_id=None)])

    record = json.loads(store_path.read_text(encoding="utf-8"))["subscriptions"][0]

    assert record["userId"] == 42
    assert record["planId"] == "1_month"
    assert record["startDate"] == "2025-03-01T12:30:00.000Z"
    assert record["endDate"] == "2025-03-31T12:30:00.000Z"
    assert record["isActive"] is True
    assert "paymentId" not in record
    assert record["reminder3DaysSent"] is False
    assert record["expiredProcessed"] is False


def test_absent_flags_default_to_false(store, store_path):
    store_path.write_text(
        json.dumps({
            "subscriptions": [{
                "userId": 7,
                "planId": "3_months",
                "startDate": "2025-01-01T00:00:00.000Z",
                "endDate": "2025-04-01T00:00:00+00:00",
                "isActive": True,
            }]
        }),
        encoding="utf-8",
    )

    subscription = store.load()[7]

    assert subscription.payment_id is None
    assert subscription.end_date == datetime(2025, 4, 1, tzinfo=timezone.utc)
    assert not any(
        getattr(subscription, flag)
        for flag in (
            "reminder_3_days_sent",
            "reminder_12_hours_sent",
            "expiry_day_notice_sent",
            "expired_message_sent",
            "removed_from_private_group",
            "expired_processed",
        )
    )


def test_invalid_json_loads_as_empty(store, store_path):
    store_path.write_text("{not json", encoding="utf-8")

    assert store.load() == {}


def test_wrong_shape_loads_as_empty(store, store_path):
    store_path.write_text(json.dumps([{"userId": 1}]), encoding="utf-8")

    assert store.load() == {}


def test_unparseable_record_loads_as_empty(store, store_path):
    store_path.write_text(
        json.dumps({"subscriptions": [{"userId": 1, "planId": "1_month", "startDate": "yesterday"}]}),
        encoding="utf-8",
    )

    assert store.load() == {}


def test_invalid_utf8_loads_as_empty(store, store_path, plan_catalog):
    store_path.write_bytes(b'{"subscriptions": [\xff\xfe garbage')

    assert store.load() == {}
    assert SubscriptionCoreService(store, plan_catalog).list_all() == []


def test_truncated_file_loads_as_empty(store, store_path, plan_catalog):
    store.save([_subscription(), _subscription(user_id=43, plan_id="3_months")])
    content = store_path.read_bytes()
    store_path.write_bytes(content[: len(content) // 2])

    assert store.load() == {}
    assert SubscriptionCoreService(store, plan_catalog).list_all() == []


def test_save_of_load_is_fixed_point(store, store_path):
    store.save([_subscription(), _subscription(user_id=43, is_active=False, expired_processed=True)])
    before = store_path.read_text(encoding="utf-8")

    store.save(store.load())

    assert store_path.read_text(encoding="utf-8") == before


def test_save_leaves_no_temporary_files(store, store_path):
    store.save([_subscription()])
    store.save([_subscription(plan_id="6_months")])

    assert sorted(p.name for p in store_path.parent.iterdir()) == ["subscriptions.json"]
    assert store.load()[42].plan_id == "6_months"

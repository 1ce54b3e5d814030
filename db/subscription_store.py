"""
JSON file storage for user subscriptions.

Файл перезаписывается целиком при каждом сохранении. Запись атомарная:
данные пишутся во временный файл в том же каталоге и заменяют основной
файл через os.replace, поэтому падение процесса во время записи не портит базу.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Union

from db.models import UserSubscription

# Порядок полей в файле совпадает с форматом хранения
_FLAG_FIELDS = (
    ("reminder3DaysSent", "reminder_3_days_sent"),
    ("reminder12HoursSent", "reminder_12_hours_sent"),
    ("expiryDayNoticeSent", "expiry_day_notice_sent"),
    ("expiredMessageSent", "expired_message_sent"),
    ("removedFromPrivateGroup", "removed_from_private_group"),
    ("expiredProcessed", "expired_processed"),
)


class PersistenceCorrupt(Exception):
    """Subscription store file cannot be parsed."""


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def subscription_to_record(subscription: UserSubscription) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "userId": subscription.user_id,
        "planId": subscription.plan_id,
        "startDate": _format_datetime(subscription.start_date),
        "endDate": _format_datetime(subscription.end_date),
        "isActive": subscription.is_active,
    }
    if subscription.payment_id is not None:
        record["paymentId"] = subscription.payment_id
    for stored_name, attr_name in _FLAG_FIELDS:
        record[stored_name] = bool(getattr(subscription, attr_name))
    return record


def subscription_from_record(record: Mapping[str, Any]) -> UserSubscription:
    """
    Build a subscription from a stored record.

    Missing progress flags default to False so older files keep loading.

    Raises:
        PersistenceCorrupt: required fields are missing or malformed
    """
    try:
        payment_id = record.get("paymentId")
        return UserSubscription(
            user_id=int(record["userId"]),
            plan_id=str(record["planId"]),
            start_date=_parse_datetime(record["startDate"]),
            end_date=_parse_datetime(record["endDate"]),
            is_active=bool(record["isActive"]),
            payment_id=str(payment_id) if payment_id is not None else None,
            **{attr: bool(record.get(stored, False)) for stored, attr in _FLAG_FIELDS},
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise PersistenceCorrupt(f"Invalid subscription record {record!r}: {e}") from e


class SubscriptionStore:
    """
    Durable storage of one subscription record per user.

    Only this class touches the file system; it contains no business logic.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Initialize the store and create an empty database file if needed.

        Args:
            path: Path to the JSON file, relative paths are resolved against the CWD
        """
        self.path = Path(path)
        if not self.path.is_absolute():
            self.path = Path.cwd() / self.path
        self._ensure_file()

    def load(self) -> Dict[int, UserSubscription]:
        """
        Load all subscriptions.

        Returns:
            Mapping user_id -> subscription. Empty if the file is missing,
            empty or corrupt (corruption is logged, never raised).
        """
        try:
            records = self._read_records()
            subscriptions = {}
            for record in records:
                subscription = subscription_from_record(record)
                subscriptions[subscription.user_id] = subscription
        except PersistenceCorrupt as e:
            logging.error(
                f"Subscription store {self.path} is corrupt, starting with an empty state: {e}"
            )
            return {}

        logging.info(f"Loaded {len(subscriptions)} subscriptions from {self.path}")
        return subscriptions

    def save(self, subscriptions: Union[Mapping[int, UserSubscription], Iterable[UserSubscription]]) -> None:
        """
        Overwrite the whole file with the given subscriptions.

        Args:
            subscriptions: Mapping user_id -> subscription or an iterable of subscriptions
        """
        items = subscriptions.values() if isinstance(subscriptions, Mapping) else subscriptions
        payload = {"subscriptions": [subscription_to_record(item) for item in items]}
        self._write_atomic(payload)

    def _ensure_file(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self._write_atomic({"subscriptions": []})
            logging.info(f"Created empty subscription store at {self.path}")

    def _read_records(self) -> list:
        try:
            content = self.path.read_bytes().decode("utf-8").strip()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise PersistenceCorrupt(f"cannot read file: {e}") from e
        except UnicodeDecodeError as e:
            raise PersistenceCorrupt(f"invalid encoding: {e}") from e

        if not content:
            return []

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise PersistenceCorrupt(f"invalid JSON: {e}") from e

        if not isinstance(parsed, dict) or not isinstance(parsed.get("subscriptions"), list):
            raise PersistenceCorrupt("'subscriptions' list is missing")
        return parsed["subscriptions"]

    def _write_atomic(self, payload: Dict[str, Any]):
        data = json.dumps(payload, ensure_ascii=False, indent=2)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
                tmp_file.write(data)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

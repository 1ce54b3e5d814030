"""
Payment Reconciler

Преобразует уведомление платежного шлюза (CloudPayments) в решение
об активации подписки: кто заплатил, за какой тариф и каким платежом.

Ответственность:
- Разбор полей уведомления (включая JSON-метаданные с двойной сериализацией)
- Определение пользователя и тарифа
- Отклонение неуспешных статусов платежа

Сам reconciler не меняет состояние подписок: активацию выполняет
PaymentWebhookService под блокировкой пользователя.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from bot.services.subscription.errors import UnresolvedIdentity, UnresolvedPlan

ACCEPTED_STATUSES = frozenset({"Completed", "Authorized"})

# Имена полей в нашем формате и их алиасы из CloudPayments
_FIELD_ALIASES = {
    "transaction_id": ("transactionId", "TransactionId"),
    "status": ("status", "Status"),
    "account_id": ("accountId", "AccountId"),
    "invoice_id": ("invoiceId", "InvoiceId"),
    "metadata": ("metadata", "Data", "JsonData"),
}


class ReconciliationOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class ReconciliationResult:
    """Результат разбора уведомления об оплате"""
    outcome: ReconciliationOutcome
    status: Optional[str] = None
    user_id: Optional[int] = None
    plan_id: Optional[str] = None
    payment_id: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is ReconciliationOutcome.ACCEPTED


def _pick(payload: Mapping[str, Any], field_name: str) -> Any:
    for alias in _FIELD_ALIASES[field_name]:
        value = payload.get(alias)
        if value is not None and value != "":
            return value
    return None


def parse_metadata(raw: Any) -> Dict[str, Any]:
    """
    Parse notification metadata.

    Accepts a dict, a JSON string or a JSON string holding another JSON string
    (CloudPayments sometimes serializes Data twice). Anything else is discarded.

    Args:
        raw: Raw metadata value from the notification

    Returns:
        Metadata dict (empty if absent or unparseable)
    """
    value = raw
    for _ in range(2):
        if not isinstance(value, str):
            break
        try:
            value = json.loads(value)
        except (TypeError, ValueError) as e:
            logging.warning(f"Payment metadata is not valid JSON, ignored: {e}")
            return {}

    if value is None:
        return {}
    if not isinstance(value, dict):
        logging.warning(f"Payment metadata has unexpected type {type(value).__name__}, ignored")
        return {}
    return value


def parse_user_id(value: Any) -> Optional[int]:
    """Telegram user id from metadata/accountId; non-numeric and zero are unresolved."""
    if value is None or isinstance(value, bool):
        return None
    try:
        user_id = int(str(value).strip())
    except ValueError:
        return None
    return user_id or None


def plan_from_invoice_id(invoice_id: Any) -> Optional[str]:
    """
    Extract plan id from an invoice id of the form "{userId}_{planId}_{epochMs}".

    The plan id itself may contain underscores ("1_month"), so everything
    between the first and the last segment is taken.
    """
    if not isinstance(invoice_id, str):
        return None
    parts = invoice_id.split("_")
    if len(parts) < 3:
        return None
    plan_id = "_".join(parts[1:-1])
    return plan_id or None


class PaymentReconciler:
    """Turns gateway notifications into activation decisions."""

    def __init__(self, accepted_statuses=ACCEPTED_STATUSES):
        self.accepted_statuses = frozenset(accepted_statuses)

    def reconcile(self, payload: Mapping[str, Any]) -> ReconciliationResult:
        """
        Reconcile a payment notification.

        Args:
            payload: Notification fields (our names or CloudPayments aliases)

        Returns:
            ReconciliationResult with outcome ACCEPTED or REJECTED

        Raises:
            UnresolvedIdentity: accepted payment without a resolvable user
            UnresolvedPlan: accepted payment without a resolvable plan
        """
        transaction_id = _pick(payload, "transaction_id")
        payment_id = str(transaction_id) if transaction_id is not None else None
        status = _pick(payload, "status")
        status = str(status) if status is not None else None

        if status not in self.accepted_statuses:
            logging.info(
                f"Payment notification rejected: transaction={payment_id}, status={status}"
            )
            return ReconciliationResult(
                outcome=ReconciliationOutcome.REJECTED,
                status=status,
                payment_id=payment_id,
            )

        metadata = parse_metadata(_pick(payload, "metadata"))

        user_id = parse_user_id(metadata.get("userId"))
        if user_id is None:
            user_id = parse_user_id(_pick(payload, "account_id"))
        if user_id is None:
            raise UnresolvedIdentity(
                f"Cannot resolve user for transaction {payment_id}"
            )

        plan_id = metadata.get("planId")
        if not isinstance(plan_id, str) or not plan_id:
            plan_id = plan_from_invoice_id(_pick(payload, "invoice_id"))
        if plan_id is None:
            raise UnresolvedPlan(
                f"Cannot resolve plan for transaction {payment_id} (user {user_id})"
            )

        logging.info(
            f"Payment notification accepted: transaction={payment_id}, status={status}, "
            f"user={user_id}, plan={plan_id}"
        )
        return ReconciliationResult(
            outcome=ReconciliationOutcome.ACCEPTED,
            status=status,
            user_id=user_id,
            plan_id=plan_id,
            payment_id=payment_id,
        )

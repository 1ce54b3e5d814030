"""
Subscription Core Service

Единственное in-memory представление подписок, синхронизированное с хранилищем.

Ответственность:
- Проверка активной подписки пользователя (только чтение)
- Активация подписки после оплаты
- Точечные обновления флагов жизненного цикла
- Выдача полного списка подписок для lifecycle job

Флаг is_active здесь никогда не снимается при чтении: подписка с истекшей
end_date просто не возвращается из query(). Снятие флага выполняет только
процесс истечения в SubscriptionLifecycleService вместе с уведомлением
пользователя и удалением из закрытой группы.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from bot.services.subscription.helpers import SubscriptionActivationHelper, utcnow
from bot.services.subscription.plans import PlanCatalog
from db.models import UserSubscription
from db.subscription_store import SubscriptionStore

# user_id является ключом записи и не меняется через patch
_PATCHABLE_FIELDS = frozenset(UserSubscription.field_names()) - {"user_id"}


class SubscriptionCoreService:
    """
    Core service for subscription state.

    Every mutating call persists the whole store before returning, and none of
    the methods awaits anything, so a mutation is never interleaved with
    another coroutine.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        plan_catalog: PlanCatalog,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize SubscriptionCoreService.

        Args:
            store: Subscription store, loaded once here
            plan_catalog: Plan catalog for activation
            clock: Source of the current UTC time
        """
        self.store = store
        self.plan_catalog = plan_catalog
        self.clock = clock
        self.activation_helper = SubscriptionActivationHelper()
        self._subscriptions: Dict[int, UserSubscription] = store.load()

        logging.info(
            f"SubscriptionCoreService initialized with {len(self._subscriptions)} subscriptions"
        )

    # ==================== Queries ====================

    def query(self, user_id: int, now: Optional[datetime] = None) -> Optional[UserSubscription]:
        """
        Get user's active subscription.

        Returns the record only if it is flagged active and not past its end date.
        A stale record is treated as absent but is NOT modified.

        Args:
            user_id: Telegram user ID
            now: Point in time to check against (defaults to the clock)

        Returns:
            Copy of the subscription or None
        """
        subscription = self._subscriptions.get(user_id)
        if not subscription or not subscription.is_active:
            return None

        now = now or self.clock()
        if now > subscription.end_date:
            return None
        return subscription.copy()

    def has_active_subscription(self, user_id: int) -> bool:
        return self.query(user_id) is not None

    def get_record(self, user_id: int) -> Optional[UserSubscription]:
        """Unfiltered lookup of a single record (active or not)."""
        subscription = self._subscriptions.get(user_id)
        return subscription.copy() if subscription else None

    def list_all(self) -> List[UserSubscription]:
        """
        Snapshot of all subscriptions, including inactive and expired ones.

        Returns:
            List of copies; mutating them does not change the state
        """
        return [subscription.copy() for subscription in self._subscriptions.values()]

    def is_duplicate_payment(self, user_id: int, payment_id: Optional[str]) -> bool:
        """
        Check whether a payment was already applied to the user's current subscription.

        Args:
            user_id: Telegram user ID
            payment_id: Incoming transaction id

        Returns:
            True if the stored record is active and carries the same payment_id
        """
        if not payment_id:
            return False
        subscription = self._subscriptions.get(user_id)
        return bool(
            subscription
            and subscription.is_active
            and subscription.payment_id == payment_id
        )

    # ==================== Mutations ====================

    def activate(
        self,
        user_id: int,
        plan_id: str,
        payment_id: Optional[str] = None,
    ) -> UserSubscription:
        """
        Activate (or re-activate) a subscription for the user.

        The previous record, if any, is overwritten: dates are recalculated and
        every progress flag is reset.

        Args:
            user_id: Telegram user ID
            plan_id: Plan ID from the catalog
            payment_id: Payment reference (optional)

        Returns:
            Copy of the new subscription

        Raises:
            PlanNotFound: plan_id is not in the catalog
        """
        plan = self.plan_catalog.require_plan(plan_id)
        subscription = self.activation_helper.build_fresh_subscription(
            user_id, plan, self.clock(), payment_id
        )

        previous = self._subscriptions.get(user_id)
        self._commit(user_id, subscription)

        logging.info(
            f"Subscription activated for user {user_id}: plan={plan_id}, "
            f"payment_id={payment_id}, ends={subscription.end_date.isoformat()}"
            + (f" (overwrote record with plan={previous.plan_id})" if previous else "")
        )
        return subscription.copy()

    def patch(self, user_id: int, update_data: Mapping[str, Any]) -> Optional[UserSubscription]:
        """
        Merge fields onto the user's existing record.

        Args:
            user_id: Telegram user ID
            update_data: Field name -> new value

        Returns:
            Copy of the updated subscription, or None if the user has no record

        Raises:
            ValueError: unknown field name in update_data
        """
        unknown = set(update_data) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")

        subscription = self._subscriptions.get(user_id)
        if not subscription:
            logging.warning(f"Patch skipped: no subscription record for user {user_id}")
            return None

        updated = replace(subscription, **update_data)
        self._commit(user_id, updated)

        logging.debug(f"Subscription of user {user_id} patched: {dict(update_data)}")
        return updated.copy()

    def _commit(self, user_id: int, subscription: UserSubscription):
        # Memory is updated only after the file write succeeded
        snapshot = dict(self._subscriptions)
        snapshot[user_id] = subscription
        self.store.save(snapshot)
        self._subscriptions = snapshot

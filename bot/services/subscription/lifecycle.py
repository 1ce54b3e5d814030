"""
Subscription Lifecycle Service

Периодическая задача, которая проводит каждую подписку через этапы:
напоминание за 3 дня, напоминание за 12 часов, уведомление в день окончания
и процесс истечения (сообщение, удаление из закрытой группы, терминальное
состояние).

Каждый флаг прогресса выставляется только после успешной доставки, поэтому
неудачный шаг автоматически повторяется в следующем цикле. Процесс истечения
можно безопасно перезапускать с любого промежуточного состояния.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Set

from config.settings import Settings
from bot.keyboards.inline.user_keyboards import get_renew_keyboard
from bot.services.messaging_service import TelegramMessagingService
from bot.services.subscription.core import SubscriptionCoreService
from bot.services.subscription.helpers import REMINDER_FLAGS, ReminderWindows, utcnow
from bot.services.subscription.plans import PlanCatalog
from bot.utils import message_texts
from bot.utils.user_locks import UserLockRegistry
from db.models import UserSubscription


@dataclass
class CycleReport:
    """Итоги одного цикла lifecycle job"""
    started_at: datetime
    skipped: bool = False
    checked: int = 0
    reminders_sent: int = 0
    expired_messages_sent: int = 0
    removed_from_group: int = 0
    expirations_finalized: int = 0
    failures: int = 0
    finished_at: Optional[datetime] = field(default=None)


class SubscriptionLifecycleService:
    """
    Recurring reminder/expiration job.

    Runs are single-flight: a timer tick that fires while a cycle is still in
    progress is skipped. Failures of one user never abort the rest of the cycle.
    """

    def __init__(
        self,
        settings: Settings,
        subscription_service: SubscriptionCoreService,
        plan_catalog: PlanCatalog,
        messaging_service: TelegramMessagingService,
        user_locks: UserLockRegistry,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize SubscriptionLifecycleService.

        Args:
            settings: Application settings (interval, private group, timezone)
            subscription_service: Subscription state
            plan_catalog: Plan catalog for plan names in messages
            messaging_service: Telegram messaging gateway
            user_locks: Per-user locks shared with the payment webhook
            clock: Source of the current UTC time
        """
        self.subscription_service = subscription_service
        self.plan_catalog = plan_catalog
        self.messaging_service = messaging_service
        self.user_locks = user_locks
        self.clock = clock

        self.interval_seconds = settings.SUBSCRIPTION_CHECK_INTERVAL_SECONDS
        self.private_group_id = settings.PRIVATE_CHANNEL_ID
        self.tz = settings.lifecycle_tz

        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_tasks: Set[asyncio.Task] = set()
        self._is_running = False

    # ==================== Timer ====================

    def start(self):
        """Start the timer; the first cycle runs immediately."""
        if self._timer_task is not None:
            return
        self._timer_task = asyncio.create_task(self._timer(), name="subscription-lifecycle-timer")
        logging.info(f"Subscription lifecycle job started (interval: {self.interval_seconds}s)")

    async def stop(self):
        """Stop the timer. A cycle that is already running is not awaited."""
        if self._timer_task is None:
            return
        self._timer_task.cancel()
        try:
            await self._timer_task
        except asyncio.CancelledError:
            pass
        self._timer_task = None
        logging.info("Subscription lifecycle job stopped")

    @property
    def is_started(self) -> bool:
        return self._timer_task is not None

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def _timer(self):
        while True:
            self._spawn_cycle()
            await asyncio.sleep(self.interval_seconds)

    def _spawn_cycle(self):
        task = asyncio.create_task(self.run_cycle(), name="subscription-lifecycle-cycle")
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    # ==================== Cycle ====================

    async def run_cycle(self, now: Optional[datetime] = None) -> CycleReport:
        """
        Walk all subscriptions once.

        Args:
            now: Point in time for window calculations (defaults to the clock)

        Returns:
            CycleReport; skipped=True if another cycle was still running
        """
        now = now or self.clock()
        report = CycleReport(started_at=now)

        if self._is_running:
            logging.warning("Subscription lifecycle: previous cycle still running, tick skipped")
            report.skipped = True
            return report

        self._is_running = True
        try:
            for snapshot in self.subscription_service.list_all():
                if snapshot.expired_processed:
                    continue
                report.checked += 1
                try:
                    async with self.user_locks.lock(snapshot.user_id):
                        await self._process_subscription(snapshot.user_id, now, report)
                except Exception as e:
                    report.failures += 1
                    logging.error(
                        f"Subscription lifecycle: error processing user {snapshot.user_id}: {e}",
                        exc_info=True,
                    )
        except Exception as e:
            logging.error(f"Subscription lifecycle cycle failed: {e}", exc_info=True)
        finally:
            self._is_running = False
            report.finished_at = self.clock()

        if report.reminders_sent or report.expirations_finalized or report.failures:
            logging.info(
                f"Subscription lifecycle: checked={report.checked}, "
                f"reminders={report.reminders_sent}, finalized={report.expirations_finalized}, "
                f"failures={report.failures}"
            )
        return report

    async def _process_subscription(self, user_id: int, now: datetime, report: CycleReport):
        # Перечитываем запись под блокировкой: webhook мог ее перезаписать
        subscription = self.subscription_service.get_record(user_id)
        if not subscription or subscription.expired_processed:
            return

        remaining = subscription.end_date - now
        plan_name = self.plan_catalog.plan_name(subscription.plan_id)

        if (
            subscription.is_active
            and not subscription.reminder_3_days_sent
            and ReminderWindows.in_three_day_window(remaining)
        ):
            await self._send_stage_notice(
                subscription,
                "reminder_3_days_sent",
                message_texts.reminder_3_days(plan_name, subscription.end_date, self.tz),
                report,
            )

        if (
            subscription.is_active
            and not subscription.reminder_12_hours_sent
            and ReminderWindows.in_twelve_hour_window(remaining)
        ):
            await self._send_stage_notice(
                subscription,
                "reminder_12_hours_sent",
                message_texts.reminder_12_hours(plan_name, subscription.end_date, self.tz),
                report,
            )

        if (
            subscription.is_active
            and not subscription.expiry_day_notice_sent
            and remaining.total_seconds() > 0
            and ReminderWindows.is_expiry_day(now, subscription.end_date, self.tz)
        ):
            await self._send_stage_notice(
                subscription,
                "expiry_day_notice_sent",
                message_texts.expiry_day_notice(plan_name, subscription.end_date, self.tz),
                report,
            )

        if ReminderWindows.is_expired(remaining):
            await self._process_expiration(subscription, plan_name, report)

    async def _send_stage_notice(
        self,
        subscription: UserSubscription,
        flag: str,
        text: str,
        report: CycleReport,
    ):
        sent = await self.messaging_service.notify(subscription.user_id, text, get_renew_keyboard())
        if not sent:
            report.failures += 1
            logging.warning(
                f"Subscription lifecycle: '{flag}' not delivered to user {subscription.user_id}, "
                f"will retry next cycle"
            )
            return

        self.subscription_service.patch(subscription.user_id, {flag: True})
        report.reminders_sent += 1
        logging.info(f"Subscription lifecycle: '{flag}' delivered to user {subscription.user_id}")

    async def _process_expiration(
        self,
        subscription: UserSubscription,
        plan_name: str,
        report: CycleReport,
    ):
        user_id = subscription.user_id

        message_sent = subscription.expired_message_sent
        if not message_sent:
            message_sent = await self.messaging_service.notify(
                user_id, message_texts.subscription_expired(plan_name), get_renew_keyboard()
            )
            if message_sent:
                self.subscription_service.patch(user_id, {"expired_message_sent": True})
                report.expired_messages_sent += 1
            else:
                report.failures += 1

        if self.private_group_id is None:
            access_revoked = True
            logging.debug(f"Private group not configured, removal of user {user_id} skipped")
        elif subscription.removed_from_private_group:
            access_revoked = True
        else:
            access_revoked = await self.messaging_service.remove_member(self.private_group_id, user_id)
            if access_revoked:
                self.subscription_service.patch(user_id, {"removed_from_private_group": True})
                report.removed_from_group += 1
            else:
                report.failures += 1

        if not (message_sent and access_revoked):
            logging.warning(
                f"Subscription lifecycle: expiration of user {user_id} incomplete "
                f"(message_sent={message_sent}, access_revoked={access_revoked}), will retry"
            )
            return

        terminal_update = {"is_active": False, "expired_processed": True}
        terminal_update.update({flag: True for flag in REMINDER_FLAGS})
        self.subscription_service.patch(user_id, terminal_update)
        report.expirations_finalized += 1
        logging.info(f"Subscription of user {user_id} expired and processed (plan={subscription.plan_id})")

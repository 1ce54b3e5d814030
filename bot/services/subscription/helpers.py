"""
Subscription Helper Classes

Вспомогательные расчеты для активации подписки и окон напоминаний
жизненного цикла. Не содержат состояния и не выполняют I/O.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from db.models import SubscriptionPlan, UserSubscription

THREE_DAYS = timedelta(days=3)
TWELVE_HOURS = timedelta(hours=12)

# Флаги, которые процесс истечения принудительно выставляет в True,
# чтобы терминальная запись не получила запоздалое напоминание
REMINDER_FLAGS = (
    "reminder_3_days_sent",
    "reminder_12_hours_sent",
    "expiry_day_notice_sent",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionActivationHelper:
    """
    Helper class for subscription activation logic.

    Contains utility methods for subscription date calculations.
    """

    @staticmethod
    def calculate_end_date(plan: SubscriptionPlan, start_date: datetime) -> datetime:
        """
        Calculate subscription end date.

        Args:
            plan: Subscription plan
            start_date: Subscription start date

        Returns:
            start_date + plan.duration_days days
        """
        return start_date + timedelta(days=plan.duration_days)

    @staticmethod
    def build_fresh_subscription(
        user_id: int,
        plan: SubscriptionPlan,
        start_date: datetime,
        payment_id: Optional[str] = None,
    ) -> UserSubscription:
        """
        Build a new active subscription with all progress flags reset.

        Args:
            user_id: Telegram user ID
            plan: Purchased plan
            start_date: Activation moment (UTC)
            payment_id: Payment reference (optional)

        Returns:
            New UserSubscription
        """
        return UserSubscription(
            user_id=user_id,
            plan_id=plan.id,
            start_date=start_date,
            end_date=SubscriptionActivationHelper.calculate_end_date(plan, start_date),
            is_active=True,
            payment_id=payment_id,
        )


class ReminderWindows:
    """Проверки окон напоминаний по оставшемуся времени подписки"""

    @staticmethod
    def in_three_day_window(remaining: timedelta) -> bool:
        return TWELVE_HOURS < remaining <= THREE_DAYS

    @staticmethod
    def in_twelve_hour_window(remaining: timedelta) -> bool:
        return timedelta(0) < remaining <= TWELVE_HOURS

    @staticmethod
    def is_expiry_day(now: datetime, end_date: datetime, tz: tzinfo) -> bool:
        """
        Check that now and end_date fall on the same calendar date.

        Args:
            now: Current moment (tz-aware)
            end_date: Subscription end (tz-aware)
            tz: Timezone in which the calendar date is taken
        """
        return now.astimezone(tz).date() == end_date.astimezone(tz).date()

    @staticmethod
    def is_expired(remaining: timedelta) -> bool:
        return remaining <= timedelta(0)

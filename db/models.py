from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class SubscriptionPlan:
    """
    Тарифный план подписки (неизменяемый, задается каталогом).

    id: Ключ плана, например "1_month"
    name: Отображаемое название
    description: Краткое описание
    price: Цена в целых единицах валюты
    currency: Код валюты ISO 4217
    duration_days: Длительность подписки в днях
    features: Список включенных возможностей
    """
    id: str
    name: str
    description: str
    price: int
    currency: str
    duration_days: int
    features: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.id:
            raise ValueError("Plan id must not be empty")
        if self.price <= 0:
            raise ValueError(f"Plan {self.id}: price must be positive")
        if self.duration_days <= 0:
            raise ValueError(f"Plan {self.id}: duration_days must be positive")


@dataclass
class UserSubscription:
    """
    Подписка пользователя (одна запись на пользователя).

    user_id: Telegram ID пользователя
    plan_id: ID плана (может ссылаться на уже удаленный план)
    start_date: Дата начала подписки (UTC)
    end_date: Дата окончания подписки (UTC), источник истины для жизненного цикла
    is_active: Флаг активности, снимается только процессом истечения
    payment_id: ID последнего платежа
    reminder_3_days_sent: Напоминание за 3 дня отправлено
    reminder_12_hours_sent: Напоминание за 12 часов отправлено
    expiry_day_notice_sent: Уведомление в день окончания отправлено
    expired_message_sent: Сообщение об окончании отправлено
    removed_from_private_group: Пользователь удален из закрытой группы
    expired_processed: Истечение полностью обработано (терминальное состояние)
    """
    user_id: int
    plan_id: str
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    payment_id: Optional[str] = None
    reminder_3_days_sent: bool = False
    reminder_12_hours_sent: bool = False
    expiry_day_notice_sent: bool = False
    expired_message_sent: bool = False
    removed_from_private_group: bool = False
    expired_processed: bool = False

    def copy(self) -> "UserSubscription":
        return replace(self)

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def __repr__(self):
        return (
            f"<UserSubscription(user_id={self.user_id}, plan_id='{self.plan_id}', "
            f"ends='{self.end_date.isoformat()}', active={self.is_active}, "
            f"processed={self.expired_processed})>"
        )

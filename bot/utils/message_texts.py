"""Тексты сообщений пользователю."""

from datetime import datetime, tzinfo
from typing import Iterable, Optional

from db.models import SubscriptionPlan, UserSubscription


def format_date(dt: datetime, tz: Optional[tzinfo] = None) -> str:
    """Форматирует дату в читаемый вид"""
    if tz is not None:
        dt = dt.astimezone(tz)
    return dt.strftime("%d.%m.%Y")


WELCOME_SHORT = (
    "Этот бот помогает погрузиться в изучение химии ✨\n"
    "Жми Старт/Start , чтобы начать общение 🧡"
)

WELCOME_FULL = (
    "♥️ Мы — команда педагогов по химии «Элемент Успеха».\n\n"
    "На нашем канале тебя ждет:\n"
    "— регулярно новые темы для успешной сдачи ЕГЭ;\n"
    "— домашнее задание под каждым теоретическим занятием;\n"
    "— ответы на все задания и помощь педагогов;\n"
    "— при необходимости индивидуальная консультация.\n\n"
    "💬 А еще: чат единомышленников.\n"
    "Материалы остаются доступными, пока активна подписка.\n\n"
    "Скорее подписывайся!"
)

HELP_TEXT = (
    "📖 Справка по боту:\n\n"
    "/start - Начать работу с ботом\n"
    "/plans - Посмотреть доступные тарифы подписки\n"
    "/my_subscription - Проверить статус вашей подписки\n"
    "/buy - Купить подписку\n\n"
    "Если у вас возникли вопросы, обратитесь в поддержку."
)

NO_ACTIVE_SUBSCRIPTION = "У вас нет активной подписки."
PLAN_NOT_FOUND = "План подписки не найден."
PURCHASE_CANCELLED = "❌ Покупка отменена."
PAYMENT_LINK_FAILED = "❌ Не удалось создать ссылку на оплату. Попробуйте позже."
PAYMENT_NOT_FOUND = (
    "❌ Платеж не найден или еще не обработан.\n\n"
    "Если вы уже оплатили, подождите несколько минут и попробуйте снова.\n"
    "Если проблема сохраняется, обратитесь в поддержку."
)
CHOOSE_PLAN = "💰 Выберите тарифный план:"


def plans_overview(plans: Iterable[SubscriptionPlan], title: str = "📋 Доступные тарифы:") -> str:
    lines = [title, ""]
    for index, plan in enumerate(plans, 1):
        lines.append(f"{index}. {plan.name} - {plan.price}₽")
        lines.append(f"   {plan.description}")
        if plan.features:
            lines.append("   Включено:")
            lines.extend(f"   • {feature}" for feature in plan.features)
        lines.append("")
    return "\n".join(lines).strip()


def subscription_info(subscription: UserSubscription, plan_name: str, tz: Optional[tzinfo] = None) -> str:
    return (
        f"📋 Ваша подписка: {plan_name}\n"
        f"📅 Действует до: {format_date(subscription.end_date, tz)}\n"
        f"✅ Статус: Активна"
    )


def purchase_confirmation(plan: SubscriptionPlan) -> str:
    features = "\n".join(f"• {feature}" for feature in plan.features)
    return (
        "💳 Подтверждение покупки\n\n"
        f"📋 Тариф: {plan.name}\n"
        f"💰 Цена: {plan.price}₽\n"
        f"📅 Срок действия: {plan.duration_days} дней\n\n"
        f"Включено:\n{features}\n\n"
        "После оплаты подписка будет активирована автоматически."
    )


def payment_link_message(plan: SubscriptionPlan) -> str:
    return (
        f"💳 Оплата подписки \"{plan.name}\"\n\n"
        f"💰 Сумма: {plan.price}₽\n\n"
        "Нажмите на кнопку ниже, чтобы перейти к оплате.\n"
        "После успешной оплаты ваша подписка будет активирована автоматически."
    )


def already_subscribed(info: str) -> str:
    return (
        f"У вас уже есть активная подписка!\n\n{info}\n\n"
        "Если вы хотите продлить или изменить подписку, обратитесь в поддержку."
    )


def payment_successful(plan_name: str, end_date: datetime, tz: Optional[tzinfo] = None) -> str:
    return (
        "✅ Платеж успешно обработан!\n\n"
        f"📋 Ваша подписка \"{plan_name}\" активирована.\n"
        f"📅 Действует до: {format_date(end_date, tz)}\n\n"
        "Спасибо за покупку!"
    )


def private_group_invite(expire_hours: int) -> str:
    return (
        "🔐 Ваша персональная ссылка для входа в закрытую группу.\n"
        f"Ссылка одноразовая и действует {expire_hours} ч."
    )


# ==================== Lifecycle notifications ====================

def reminder_3_days(plan_name: str, end_date: datetime, tz: Optional[tzinfo] = None) -> str:
    return (
        "⏳ Напоминание о подписке\n\n"
        f"Ваша подписка \"{plan_name}\" закончится через 3 дня ({format_date(end_date, tz)}).\n"
        "Чтобы не потерять доступ к материалам, продлите подписку заранее."
    )


def reminder_12_hours(plan_name: str, end_date: datetime, tz: Optional[tzinfo] = None) -> str:
    return (
        "⏰ Важно: подписка скоро закончится\n\n"
        f"До окончания подписки \"{plan_name}\" осталось около 12 часов.\n"
        f"Дата окончания: {format_date(end_date, tz)}.\n\n"
        "Продлите подписку, чтобы сохранить доступ к закрытым материалам."
    )


def expiry_day_notice(plan_name: str, end_date: datetime, tz: Optional[tzinfo] = None) -> str:
    return (
        "📅 Подписка заканчивается сегодня\n\n"
        f"Сегодня последний день действия подписки \"{plan_name}\" ({format_date(end_date, tz)}).\n"
        "Если хотите продолжить обучение без перерыва, продлите подписку сейчас."
    )


def subscription_expired(plan_name: str) -> str:
    return (
        "❌ Подписка завершена\n\n"
        f"Подписка \"{plan_name}\" истекла, доступ к приватной группе закрыт.\n"
        "Чтобы снова получить доступ к материалам, оформите продление."
    )

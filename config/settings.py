import logging
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    All values come from environment variables or the `.env` file.
    Empty variables are ignored so that e.g. `PRIVATE_CHANNEL_ID=` keeps the default.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Telegram
    BOT_TOKEN: str
    BOT_USERNAME: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    # Storage
    SUBSCRIPTIONS_DB_PATH: str = "data/subscriptions.json"

    # Lifecycle job
    SUBSCRIPTION_CHECK_INTERVAL_SECONDS: int = Field(default=300)
    LIFECYCLE_TIMEZONE: str = "Europe/Moscow"

    # Закрытая группа/канал (формат: -100XXXXXXXXXX)
    PRIVATE_CHANNEL_ID: Optional[int] = None
    INVITE_LINK_EXPIRE_HOURS: int = 12

    # Plans
    ENABLE_TEST_PLAN: bool = False

    # CloudPayments
    CLOUDPAYMENTS_PUBLIC_ID: Optional[str] = None
    CLOUDPAYMENTS_API_SECRET: Optional[str] = None
    CLOUDPAYMENTS_RETURN_URL: Optional[str] = None
    CLOUDPAYMENTS_API_URL: str = "https://api.cloudpayments.ru"
    CLOUDPAYMENTS_VERIFY_SIGNATURE: bool = False
    CLOUDPAYMENTS_VERIFY_TRANSACTIONS: bool = False

    # Web server
    WEB_SERVER_HOST: str = "0.0.0.0"
    WEB_SERVER_PORT: int = 3000
    PAYMENT_WEBHOOK_PATH: str = "/webhook/payment"

    SHUTDOWN_TIMEOUT_SECONDS: int = 30

    @field_validator("SUBSCRIPTION_CHECK_INTERVAL_SECONDS", "INVITE_LINK_EXPIRE_HOURS")
    @classmethod
    def _must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("LIFECYCLE_TIMEZONE")
    @classmethod
    def _must_be_known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone '{value}'") from e
        return value

    @property
    def private_group_configured(self) -> bool:
        return self.PRIVATE_CHANNEL_ID is not None

    @property
    def lifecycle_tz(self) -> ZoneInfo:
        return ZoneInfo(self.LIFECYCLE_TIMEZONE)

    @property
    def cloudpayments_configured(self) -> bool:
        return bool(self.CLOUDPAYMENTS_PUBLIC_ID and self.CLOUDPAYMENTS_API_SECRET)


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    if not settings.private_group_configured:
        logging.warning("PRIVATE_CHANNEL_ID is not set, removal from the private group is disabled")
    if not settings.cloudpayments_configured:
        logging.warning("CloudPayments credentials are not set, payment links will not work")
    return settings

"""Конфигурация приложения."""

from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Настройки приложения."""

    # Database
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "sms_marketplace"
    db_user: str = "sms_user"
    db_password: str = "sms_password"

    # Security
    secret_key: str = "super-secret-key-for-sms-marketplace-2024"
    allowed_hosts: str = "*"
    access_token_expires_minutes: int = 60
    refresh_token_expires_hours: int = 24
    admin_emails: str = ""

    # API
    api_prefix: str = "/api/v1"
    control_prefix: str = "/api/control"

    # Number requests
    number_request_ttl_minutes: int = 20
    number_provider: str = "local"
    sms_man_base_url: str = "https://sms-man.com/stubs/handler_api.php"
    sms_man_api_key: str = ""
    sms_webhook_secret: str = "change-me-webhook-secret"

    # Price cache
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0
    price_cache_enabled: bool = True
    price_cache_ttl_seconds: int = 300

    # Payments
    default_currency: str = "USD"
    min_payment_amount: Decimal = Decimal("1.00")
    stripe_secret_key: str = ""
    stripe_api_base: str = "https://api.stripe.com/v1"
    paypal_mode: str = "sandbox"
    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    frontend_url: str = "http://localhost:3000"

    # Outbound HTTP
    http_timeout_seconds: float = 10.0

    # Expiry worker
    expiry_sweep_interval_seconds: int = 60

    model_config = {
        "env_file": ".env",
        "extra": "ignore"
    }


_settings = Settings()


def get_settings() -> Settings:
    """Получение настроек."""
    return _settings


def get_db_url() -> str:
    """Получение URL базы данных."""
    return f"postgresql+asyncpg://{_settings.db_user}:{_settings.db_password}@{_settings.db_host}:{_settings.db_port}/{_settings.db_name}"


def get_allowed_hosts() -> List[str]:
    """Получение разрешенных хостов."""
    if _settings.allowed_hosts == "*":
        return ["*"]
    return [host.strip() for host in _settings.allowed_hosts.split(",")]


def get_admin_emails() -> List[str]:
    """Получение списка email администраторов."""
    return [
        email.strip().lower()
        for email in _settings.admin_emails.split(",")
        if email.strip()
    ]


def get_number_request_ttl_minutes() -> int:
    """Получение времени жизни заявки на номер."""
    return _settings.number_request_ttl_minutes


def get_paypal_api_base() -> str:
    """Получение базового URL PayPal в зависимости от режима."""
    if _settings.paypal_mode == "live":
        return "https://api-m.paypal.com"
    return "https://api-m.sandbox.paypal.com"


def get_http_timeout() -> float:
    """Получение таймаута внешних HTTP вызовов."""
    return _settings.http_timeout_seconds


def get_expiry_sweep_interval() -> int:
    """Получение интервала очистки просроченных заявок."""
    return _settings.expiry_sweep_interval_seconds

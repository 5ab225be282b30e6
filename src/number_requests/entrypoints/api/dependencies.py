"""Зависимости для API заявок на номера."""

import hmac
from typing import Annotated, Optional

from fastapi import Depends, Header

from base.config import get_settings
from base.dependencies import get_db
from base.exceptions import AuthenticationError
from number_requests.services.providers import get_number_provider
from number_requests.services.services import NumberRequestService
from number_requests.services.unit_of_work import PostgreSQLNumberRequestUnitOfWork

settings = get_settings()


async def get_number_request_service(db=Depends(get_db)) -> NumberRequestService:
    """Получение сервиса заявок."""
    return NumberRequestService(
        PostgreSQLNumberRequestUnitOfWork(lambda: db), get_number_provider()
    )


NumberRequestServiceDependency = Annotated[
    NumberRequestService, Depends(get_number_request_service)
]


async def verify_webhook_secret(
    x_webhook_secret: Annotated[Optional[str], Header()] = None,
) -> None:
    """Проверка секрета входящего webhook провайдера."""
    if not x_webhook_secret or not hmac.compare_digest(
        x_webhook_secret.encode(), settings.sms_webhook_secret.encode()
    ):
        raise AuthenticationError("Invalid webhook secret")

"""Провайдеры телефонных номеров."""

import abc
import logging
import secrets
from typing import Optional

import httpx
from pydantic import BaseModel

from base.config import get_settings
from base.exceptions import UpstreamServiceError
from base.http import http_client, json_body, send
from catalog.domain.models import Application, Country
from number_requests.domain.models import NumberRequestStatus

logger = logging.getLogger(__name__)

settings = get_settings()

LOCAL_NUMBER_DIGITS = 10


class AcquiredNumber(BaseModel):
    """Номер, выданный провайдером."""

    phone_number: str
    provider_request_id: Optional[str] = None


class NumberProvider(abc.ABC):
    """Источник одноразовых номеров."""

    # Умеет ли провайдер отдавать SMS по запросу (иначе только webhook)
    supports_polling: bool = False

    @abc.abstractmethod
    async def acquire_number(self, country: Country, application: Application) -> AcquiredNumber:
        """Получение номера под страну и приложение."""

    @abc.abstractmethod
    async def fetch_sms(self, provider_request_id: str) -> Optional[str]:
        """Текст полученного SMS или None, если его еще нет."""

    @abc.abstractmethod
    async def release(self, provider_request_id: str, status: NumberRequestStatus) -> None:
        """Сообщить провайдеру итоговый статус номера."""


class LocalNumberProvider(NumberProvider):
    """Локальная выдача номеров; SMS приходят только через webhook."""

    async def acquire_number(self, country: Country, application: Application) -> AcquiredNumber:
        # Первая цифра номера не ноль
        low = 10 ** (LOCAL_NUMBER_DIGITS - 1)
        digits = str(low + secrets.randbelow(9 * low))
        return AcquiredNumber(phone_number=f"+{country.phone_code}{digits}")

    async def fetch_sms(self, provider_request_id: str) -> Optional[str]:
        return None

    async def release(self, provider_request_id: str, status: NumberRequestStatus) -> None:
        return None


class SmsManProvider(NumberProvider):
    """Номера из handler API sms-man."""

    service = "sms-man"
    supports_polling = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.sms_man_api_key
        self.base_url = base_url or settings.sms_man_base_url
        self.client = client

    async def _call(self, action: str, **params) -> dict:
        async with http_client(self.client) as client:
            response = await send(
                client,
                "GET",
                self.base_url,
                service=self.service,
                params={"action": action, "token": self.api_key, **params},
            )
        return json_body(response, self.service)

    async def acquire_number(self, country: Country, application: Application) -> AcquiredNumber:
        data = await self._call("get_number", country=country.id, service=application.code)
        if data.get("status") != "success":
            raise UpstreamServiceError(
                f"sms-man refused number: {data.get('message', 'unknown error')}"
            )
        payload = data.get("data") or {}
        if not payload.get("number"):
            raise UpstreamServiceError("sms-man returned no number")
        number = str(payload["number"])
        return AcquiredNumber(
            phone_number=number if number.startswith("+") else f"+{number}",
            provider_request_id=str(payload.get("request_id")),
        )

    async def fetch_sms(self, provider_request_id: str) -> Optional[str]:
        data = await self._call("get_sms", request_id=provider_request_id)
        if data.get("status") == "success":
            return (data.get("data") or {}).get("sms")
        if data.get("message") == "wait_sms":
            return None
        raise UpstreamServiceError(f"sms-man get_sms failed: {data.get('message')}")

    async def release(self, provider_request_id: str, status: NumberRequestStatus) -> None:
        data = await self._call(
            "set_status", request_id=provider_request_id, status=status.value
        )
        if data.get("status") != "success":
            raise UpstreamServiceError(f"sms-man set_status failed: {data.get('message')}")


def get_number_provider() -> NumberProvider:
    """Провайдер номеров из настроек."""
    if settings.number_provider == "sms_man":
        return SmsManProvider()
    if settings.number_provider == "local":
        return LocalNumberProvider()
    raise ValueError(f"Unknown number provider: {settings.number_provider}")

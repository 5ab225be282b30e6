"""Доменные модели заявок на номера."""

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class NumberRequestStatus(str, Enum):
    """Статусы заявки на номер."""

    READY = "ready"
    CLOSE = "close"
    REJECT = "reject"
    USED = "used"
    EXPIRED = "expired"


ACTIVE_STATUSES = frozenset({NumberRequestStatus.READY, NumberRequestStatus.CLOSE})

TERMINAL_STATUSES = frozenset(
    {NumberRequestStatus.REJECT, NumberRequestStatus.USED, NumberRequestStatus.EXPIRED}
)

# Статусы, которые клиент может выставить сам
CLIENT_STATUSES = frozenset(
    {
        NumberRequestStatus.READY,
        NumberRequestStatus.CLOSE,
        NumberRequestStatus.REJECT,
        NumberRequestStatus.USED,
    }
)

ALLOWED_TRANSITIONS: dict[NumberRequestStatus, frozenset[NumberRequestStatus]] = {
    NumberRequestStatus.READY: frozenset(
        {
            NumberRequestStatus.READY,
            NumberRequestStatus.CLOSE,
            NumberRequestStatus.REJECT,
            NumberRequestStatus.USED,
            NumberRequestStatus.EXPIRED,
        }
    ),
    NumberRequestStatus.CLOSE: frozenset(
        {
            NumberRequestStatus.CLOSE,
            NumberRequestStatus.REJECT,
            NumberRequestStatus.USED,
            NumberRequestStatus.EXPIRED,
        }
    ),
    # Из конечных статусов выхода нет
    **{status: frozenset({status}) for status in TERMINAL_STATUSES},
}

SMS_CODE_PATTERN = re.compile(r"\b(\d{4,8})\b")


def can_transition(current: NumberRequestStatus, new: NumberRequestStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def extract_sms_code(message: str) -> str:
    """Код подтверждения из текста SMS: первая группа из 4-8 цифр, иначе весь текст."""
    match = SMS_CODE_PATTERN.search(message)
    return match.group(1) if match else message.strip()


class RequestMetadata(BaseModel):
    """Сведения о клиенте и услуге на момент заказа."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    country: Optional[str] = None
    application: Optional[str] = None
    service: Optional[str] = None


class SmsEntry(BaseModel):
    """Полученное SMS."""

    message: str
    received_at: datetime


class NewNumberRequest(BaseModel):
    """Заявка, подготовленная к сохранению."""

    request_id: str
    user_id: int
    country_id: int
    application_id: int
    phone_number: str
    status: NumberRequestStatus = NumberRequestStatus.READY
    cost: Decimal = Field(ge=0)
    currency: str = "USD"
    expires_at: datetime
    provider_request_id: Optional[str] = None
    metadata: RequestMetadata = Field(default_factory=RequestMetadata)


class NumberRequest(NewNumberRequest):
    """Заявка на аренду номера."""

    id: int
    sms_code: Optional[str] = None
    received_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    sms_history: list[SmsEntry] = Field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        """Истекла ли заявка; в момент expires_at заявка уже просрочена."""
        return now >= self.expires_at


class IncomingSmsDTO(BaseModel):
    """SMS, доставленное провайдером через webhook."""

    request_id: str = Field(min_length=1)
    message: str = Field(min_length=1)

"""Доменные модели каталога: страны, приложения и цены."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


class ApplicationCategory(str, Enum):
    """Категории приложений."""

    SOCIAL = "social"
    MESSAGING = "messaging"
    MARKETPLACE = "marketplace"
    EXCHANGE = "exchange"
    GAMING = "gaming"
    OTHER = "other"


class Country(BaseModel):
    """Страна, в которой выдаются номера."""

    id: int = Field(ge=0)
    title: str
    code: str
    phone_code: str
    is_active: bool = True
    priority: int = 0
    currency: str = "USD"
    timezone: str = "UTC"
    language: str = "en"

    @field_validator("title")
    @classmethod
    def title_must_not_be_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be empty")
        return v.strip()

    @field_validator("code")
    @classmethod
    def code_upper(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("phone_code")
    @classmethod
    def phone_code_digits(cls, v: str) -> str:
        v = v.strip().lstrip("+")
        if not v.isdigit():
            raise ValueError("phone_code must contain digits only")
        return v


class Application(BaseModel):
    """Приложение (сервис), для которого принимается SMS."""

    id: int = Field(ge=0)
    name: str
    code: str
    category: ApplicationCategory = ApplicationCategory.OTHER
    is_active: bool = True
    priority: int = 0
    description: str = ""
    website: Optional[str] = None
    color: str = "#007bff"

    @field_validator("name")
    @classmethod
    def name_must_not_be_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be empty")
        return v.strip()

    @field_validator("code")
    @classmethod
    def code_lower(cls, v: str) -> str:
        return v.strip().lower()


class BulkDiscountTier(BaseModel):
    """Скидка за объем: диапазон количества и процент."""

    min_quantity: int = Field(ge=1)
    max_quantity: int = Field(ge=1)
    discount_percent: Decimal = Field(ge=0, le=100)

    @model_validator(mode="after")
    def check_range(self) -> "BulkDiscountTier":
        if self.min_quantity > self.max_quantity:
            raise ValueError("min_quantity must not exceed max_quantity")
        return self

    def matches(self, quantity: int) -> bool:
        return self.min_quantity <= quantity <= self.max_quantity


class PriceEntry(BaseModel):
    """Цена номера для пары (страна, приложение)."""

    country_id: int
    application_id: int
    cost: Decimal = Field(ge=0)
    currency: str = "USD"
    count: int = Field(default=0, ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    bulk_discounts: list[BulkDiscountTier] = Field(default_factory=list)
    is_active: bool = True
    updated_at: Optional[datetime] = None
    updated_by: Optional[int] = None


class PriceUpsert(BaseModel):
    """Данные для создания или обновления цены."""

    country_id: int
    application_id: int
    cost: Decimal = Field(ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    count: int = Field(default=0, ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    # None: у существующей цены не меняется, у новой пустой список и true
    bulk_discounts: Optional[list[BulkDiscountTier]] = None
    is_active: Optional[bool] = None

    @field_validator("currency")
    @classmethod
    def currency_upper(cls, v: str) -> str:
        return v.upper()


def final_price(entry: PriceEntry, quantity: int = 1) -> Decimal:
    """Итоговая цена с учетом скидок.

    Сначала применяется первая подходящая скидка за объем, затем общая
    скидка; обе мультипликативно. Результат округляется до центов
    (ROUND_HALF_UP).
    """
    price = Decimal(entry.cost)

    tier = next((t for t in entry.bulk_discounts if t.matches(quantity)), None)
    if tier is not None:
        price = price * (1 - Decimal(tier.discount_percent) / HUNDRED)

    if entry.discount > 0:
        price = price * (1 - Decimal(entry.discount) / HUNDRED)

    return price.quantize(CENT, rounding=ROUND_HALF_UP)

"""Доменные модели баланса и платежей."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class TransactionType(str, Enum):
    """Типы операций по балансу."""

    PAYMENT = "payment"
    PURCHASE = "purchase"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"


class PaymentMethod(str, Enum):
    """Способы изменения баланса."""

    STRIPE = "stripe"
    PAYPAL = "paypal"
    BALANCE = "balance"
    ADMIN = "admin"


class CreditMeta(BaseModel):
    """Метаданные зачисления."""

    currency: str = "USD"
    method: PaymentMethod
    external_reference: Optional[str] = None
    type: TransactionType = TransactionType.PAYMENT
    description: str = ""


class DebitMeta(BaseModel):
    """Метаданные списания."""

    currency: str = "USD"
    method: PaymentMethod = PaymentMethod.BALANCE
    type: TransactionType = TransactionType.PURCHASE
    request_id: Optional[str] = None
    description: str = ""


class NewTransaction(BaseModel):
    """Операция, подготовленная к записи в журнал."""

    user_id: int
    type: TransactionType
    amount: Decimal = Field(gt=0)
    currency: str = "USD"
    method: PaymentMethod
    external_reference: Optional[str] = None
    request_id: Optional[str] = None
    balance_after: Decimal
    description: str = ""


class Transaction(NewTransaction):
    """Неизменяемая запись журнала операций."""

    id: int
    created_at: datetime


class ConfirmedPayment(BaseModel):
    """Платеж, подтвержденный провайдером."""

    provider_payment_id: str
    amount: Decimal
    currency: str
    method: PaymentMethod


class PaymentResult(BaseModel):
    """Результат зачисления платежа."""

    amount: Decimal
    currency: str
    new_balance: Decimal


class PaymentCreateDTO(BaseModel):
    """Запрос на создание платежа для пополнения баланса."""

    amount: Decimal = Field(gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class StripePaymentIntent(BaseModel):
    """Созданный PaymentIntent для оплаты на клиенте."""

    payment_intent_id: str
    client_secret: str


class PayPalPaymentLink(BaseModel):
    """Созданный платеж PayPal и ссылка на его одобрение."""

    payment_id: str
    approval_url: str


class StripeConfirmDTO(BaseModel):
    """Подтверждение оплаты Stripe."""

    payment_intent_id: str = Field(min_length=1)


class PayPalExecuteDTO(BaseModel):
    """Проведение платежа PayPal."""

    payment_id: str = Field(min_length=1)
    payer_id: str = Field(min_length=1)


class BalanceAdjustmentDTO(BaseModel):
    """Ручная корректировка баланса администратором."""

    amount: Decimal
    reason: str = Field(min_length=1)

    @field_validator("amount")
    @classmethod
    def amount_not_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("amount must not be zero")
        return v

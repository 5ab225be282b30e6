"""API endpoints пополнения баланса."""

from fastapi import APIRouter

from base.config import get_settings
from billing.domain.models import (
    PaymentCreateDTO,
    PaymentResult,
    PayPalExecuteDTO,
    PayPalPaymentLink,
    StripeConfirmDTO,
    StripePaymentIntent,
)
from billing.entrypoints.api.dependencies import LedgerServiceDependency
from users.entrypoints.api.dependencies import CurrentUserDependency

router = APIRouter()

settings = get_settings()


@router.get("/methods/")
async def get_payment_methods(user: CurrentUserDependency, service: LedgerServiceDependency):
    """Доступные способы оплаты."""
    return {
        "methods": service.get_payment_methods(),
        "min_amount": str(settings.min_payment_amount),
        "currency": settings.default_currency,
    }


@router.post("/stripe/create-payment-intent/")
async def create_stripe_payment_intent(
    data: PaymentCreateDTO, user: CurrentUserDependency, service: LedgerServiceDependency
) -> StripePaymentIntent:
    """Создание PaymentIntent для оплаты картой."""
    return await service.create_stripe_payment(user.id, user.email, data.amount, data.currency)


@router.post("/stripe/confirm-payment/")
async def confirm_stripe_payment(
    data: StripeConfirmDTO, user: CurrentUserDependency, service: LedgerServiceDependency
) -> PaymentResult:
    """Подтверждение оплаты картой и зачисление на баланс."""
    return await service.confirm_stripe_payment(user.id, data.payment_intent_id)


@router.post("/paypal/create-payment/")
async def create_paypal_payment(
    data: PaymentCreateDTO, user: CurrentUserDependency, service: LedgerServiceDependency
) -> PayPalPaymentLink:
    """Создание платежа PayPal и получение ссылки на одобрение."""
    return await service.create_paypal_payment(user.id, data.amount, data.currency)


@router.post("/paypal/execute-payment/")
async def execute_paypal_payment(
    data: PayPalExecuteDTO, user: CurrentUserDependency, service: LedgerServiceDependency
) -> PaymentResult:
    """Проведение платежа PayPal и зачисление на баланс."""
    return await service.execute_paypal_payment(user.id, data.payment_id, data.payer_id)

"""Клиенты платежных провайдеров (Stripe, PayPal)."""

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

import httpx

from base.config import get_paypal_api_base, get_settings
from base.exceptions import InvalidParameterError, UpstreamServiceError
from base.http import http_client, json_body, send
from billing.domain.models import (
    ConfirmedPayment,
    PaymentMethod,
    PayPalPaymentLink,
    StripePaymentIntent,
)

logger = logging.getLogger(__name__)

settings = get_settings()


def _to_amount(value, service: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError) as e:
        raise UpstreamServiceError(f"{service} returned invalid amount") from e


class StripeClient:
    """Создание и проверка PaymentIntent через REST API Stripe."""

    service = "Stripe"

    def __init__(
        self,
        secret_key: Optional[str] = None,
        api_base: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self.api_base = (api_base or settings.stripe_api_base).rstrip("/")
        self.client = client

    @property
    def enabled(self) -> bool:
        return bool(self.secret_key)

    async def create_payment_intent(
        self, amount: Decimal, currency: str, user_id: int, email: str
    ) -> StripePaymentIntent:
        """Создание PaymentIntent с привязкой к пользователю через metadata."""
        if not self.enabled:
            raise UpstreamServiceError("Stripe is not configured")

        async with http_client(self.client) as client:
            response = await send(
                client,
                "POST",
                f"{self.api_base}/payment_intents",
                service=self.service,
                auth=(self.secret_key, ""),
                data={
                    "amount": str(int((amount * 100).to_integral_value(ROUND_HALF_UP))),
                    "currency": currency.lower(),
                    "metadata[userId]": str(user_id),
                    "metadata[email]": email,
                },
            )
        intent = json_body(response, self.service)

        if not intent.get("id") or not intent.get("client_secret"):
            raise UpstreamServiceError("Stripe returned incomplete payment intent")
        return StripePaymentIntent(
            payment_intent_id=str(intent["id"]), client_secret=str(intent["client_secret"])
        )

    async def confirm_payment(self, payment_intent_id: str, user_id: int) -> ConfirmedPayment:
        """Получение PaymentIntent и проверка, что он оплачен этим пользователем."""
        if not self.enabled:
            raise UpstreamServiceError("Stripe is not configured")

        async with http_client(self.client) as client:
            response = await send(
                client,
                "GET",
                f"{self.api_base}/payment_intents/{payment_intent_id}",
                service=self.service,
                auth=(self.secret_key, ""),
            )
        intent = json_body(response, self.service)

        if intent.get("status") != "succeeded":
            raise InvalidParameterError("Payment not completed")
        metadata = intent.get("metadata") or {}
        if str(metadata.get("userId")) != str(user_id):
            raise InvalidParameterError("Payment does not belong to this user")

        # Stripe возвращает сумму в центах
        amount = _to_amount(intent.get("amount"), self.service) / 100
        return ConfirmedPayment(
            provider_payment_id=str(intent.get("id") or payment_intent_id),
            amount=amount.quantize(Decimal("0.01")),
            currency=str(intent.get("currency") or settings.default_currency).upper(),
            method=PaymentMethod.STRIPE,
        )


class PayPalClient:
    """Проведение платежей через REST API PayPal."""

    service = "PayPal"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        api_base: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.client_id = client_id if client_id is not None else settings.paypal_client_id
        self.client_secret = (
            client_secret if client_secret is not None else settings.paypal_client_secret
        )
        self.api_base = (api_base or get_paypal_api_base()).rstrip("/")
        self.client = client

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        response = await send(
            client,
            "POST",
            f"{self.api_base}/v1/oauth2/token",
            service=self.service,
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
        )
        token = json_body(response, self.service).get("access_token")
        if not token:
            raise UpstreamServiceError("PayPal did not return an access token")
        return str(token)

    async def create_payment(
        self, amount: Decimal, currency: str, user_id: int
    ) -> PayPalPaymentLink:
        """Создание платежа и получение ссылки на его одобрение покупателем."""
        if not self.enabled:
            raise UpstreamServiceError("PayPal is not configured")

        total = amount.quantize(Decimal("0.01"), ROUND_HALF_UP)
        frontend_url = settings.frontend_url.rstrip("/")
        async with http_client(self.client) as client:
            token = await self._access_token(client)
            response = await send(
                client,
                "POST",
                f"{self.api_base}/v1/payments/payment",
                service=self.service,
                headers={"Authorization": f"Bearer {token}"},
                json={
                    "intent": "sale",
                    "payer": {"payment_method": "paypal"},
                    "redirect_urls": {
                        "return_url": f"{frontend_url}/payment/success",
                        "cancel_url": f"{frontend_url}/payment/cancel",
                    },
                    "transactions": [
                        {
                            "amount": {"total": str(total), "currency": currency.upper()},
                            "description": f"Balance top-up {total} {currency.upper()}",
                            "custom": str(user_id),
                        }
                    ],
                },
            )
        payment = json_body(response, self.service)

        approval_url = next(
            (
                link.get("href")
                for link in payment.get("links") or []
                if isinstance(link, dict) and link.get("rel") == "approval_url"
            ),
            None,
        )
        if not payment.get("id") or not approval_url:
            raise UpstreamServiceError("PayPal returned no approval link")
        return PayPalPaymentLink(payment_id=str(payment["id"]), approval_url=str(approval_url))

    async def execute_payment(self, payment_id: str, payer_id: str) -> ConfirmedPayment:
        """Проведение одобренного покупателем платежа."""
        if not self.enabled:
            raise UpstreamServiceError("PayPal is not configured")

        async with http_client(self.client) as client:
            token = await self._access_token(client)
            response = await send(
                client,
                "POST",
                f"{self.api_base}/v1/payments/payment/{payment_id}/execute",
                service=self.service,
                headers={"Authorization": f"Bearer {token}"},
                json={"payer_id": payer_id},
            )
        payment = json_body(response, self.service)

        if payment.get("state") != "approved":
            raise InvalidParameterError("Payment not approved")
        try:
            amount_info = payment["transactions"][0]["amount"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamServiceError("PayPal returned no transaction amount") from e

        return ConfirmedPayment(
            provider_payment_id=str(payment.get("id") or payment_id),
            amount=_to_amount(amount_info.get("total"), self.service).quantize(Decimal("0.01")),
            currency=str(amount_info.get("currency") or settings.default_currency).upper(),
            method=PaymentMethod.PAYPAL,
        )

"""Тесты баланса и журнала операций."""

import asyncio
import json
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.exc import IntegrityError

from base.exceptions import (
    DuplicatePaymentError,
    InsufficientBalanceError,
    InternalError,
    InvalidParameterError,
    NotFoundError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)
from billing.domain.models import (
    ConfirmedPayment,
    CreditMeta,
    PaymentMethod,
    PayPalPaymentLink,
    TransactionType,
)
from billing.services.payment_providers import PayPalClient, StripeClient
from billing.services.services import LedgerService
from billing.services.unit_of_work import InMemoryLedgerUnitOfWork
from conftest import add_user


def ledger_service(store, **kwargs) -> LedgerService:
    return LedgerService(
        InMemoryLedgerUnitOfWork(store),
        stripe=kwargs.get("stripe", AsyncMock()),
        paypal=kwargs.get("paypal", AsyncMock()),
    )


def stripe_meta(reference: str) -> CreditMeta:
    return CreditMeta(method=PaymentMethod.STRIPE, external_reference=reference)


class TestDebit:
    """Тесты списания."""

    @pytest.mark.asyncio
    async def test_debit_then_insufficient(self, store):
        """Баланс 1.00: списание 0.30 дает 0.70, затем 0.80 не проходит."""
        user = add_user(store, "1.00")
        service = ledger_service(store)

        assert await service.debit(user.id, Decimal("0.30")) == Decimal("0.70")

        with pytest.raises(InsufficientBalanceError):
            await service.debit(user.id, Decimal("0.80"))

        assert await service.get_balance(user.id) == Decimal("0.70")
        page = await service.list_transactions(user.id)
        assert len(page.items) == 1
        assert page.items[0].type == TransactionType.PURCHASE
        assert page.items[0].balance_after == Decimal("0.70")

    @pytest.mark.asyncio
    async def test_debit_exact_balance(self, store):
        user = add_user(store, "0.30")
        service = ledger_service(store)

        assert await service.debit(user.id, Decimal("0.30")) == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_debit_unknown_user(self, store):
        with pytest.raises(NotFoundError):
            await ledger_service(store).debit(999, Decimal("1.00"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-1.00"])
    async def test_non_positive_amount_rejected(self, store, amount):
        user = add_user(store, "5.00")
        service = ledger_service(store)

        with pytest.raises(InvalidParameterError):
            await service.debit(user.id, Decimal(amount))
        with pytest.raises(InvalidParameterError):
            await service.credit(user.id, Decimal(amount), stripe_meta("pi_x"))


class TestCredit:
    """Тесты зачисления."""

    @pytest.mark.asyncio
    async def test_credit_records_transaction(self, store):
        user = add_user(store)
        service = ledger_service(store)

        assert await service.credit(user.id, Decimal("10.00"), stripe_meta("pi_1")) == Decimal("10.00")

        page = await service.list_transactions(user.id, TransactionType.PAYMENT)
        assert page.pagination.total == 1
        assert page.items[0].external_reference == "pi_1"
        assert page.items[0].method == PaymentMethod.STRIPE

    @pytest.mark.asyncio
    async def test_duplicate_reference_keeps_balance(self, store):
        """Повторный платеж отклоняется и не меняет баланс."""
        user = add_user(store)
        service = ledger_service(store)
        await service.credit(user.id, Decimal("10.00"), stripe_meta("pi_1"))

        with pytest.raises(DuplicatePaymentError):
            await service.credit(user.id, Decimal("10.00"), stripe_meta("pi_1"))

        assert await service.get_balance(user.id) == Decimal("10.00")
        page = await service.list_transactions(user.id)
        assert page.pagination.total == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_credits(self, store):
        user = add_user(store)

        results = await asyncio.gather(
            *[
                ledger_service(store).credit(user.id, Decimal("5.00"), stripe_meta("pi_race"))
                for _ in range(5)
            ],
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, DuplicatePaymentError)) == 4
        assert await ledger_service(store).get_balance(user.id) == Decimal("5.00")


class TestConcurrency:
    """Параллельные изменения баланса одного пользователя."""

    @pytest.mark.asyncio
    async def test_final_balance_matches_operations(self, store):
        user = add_user(store, "1.00")
        credits = [
            ledger_service(store).credit(user.id, Decimal("0.50"), stripe_meta(f"pi_{i}"))
            for i in range(10)
        ]
        debits = [ledger_service(store).debit(user.id, Decimal("0.25")) for _ in range(30)]

        results = await asyncio.gather(*credits, *debits, return_exceptions=True)

        failed_debits = sum(1 for r in results if isinstance(r, InsufficientBalanceError))
        assert not any(
            isinstance(r, Exception) and not isinstance(r, InsufficientBalanceError)
            for r in results
        )
        successful_debits = 30 - failed_debits
        expected = Decimal("1.00") + Decimal("5.00") - Decimal("0.25") * successful_debits
        balance = await ledger_service(store).get_balance(user.id)
        assert balance == expected
        assert balance >= 0


class TestPayments:
    """Тесты зачисления внешних платежей."""

    @pytest.mark.asyncio
    async def test_confirm_stripe_payment(self, store):
        user = add_user(store)
        stripe = AsyncMock()
        stripe.confirm_payment.return_value = ConfirmedPayment(
            provider_payment_id="pi_123",
            amount=Decimal("25.00"),
            currency="USD",
            method=PaymentMethod.STRIPE,
        )
        service = ledger_service(store, stripe=stripe)

        result = await service.confirm_stripe_payment(user.id, "pi_123")

        assert result.new_balance == Decimal("25.00")
        stripe.confirm_payment.assert_called_once_with("pi_123", user.id)
        with pytest.raises(DuplicatePaymentError):
            await service.confirm_stripe_payment(user.id, "pi_123")

    @pytest.mark.asyncio
    async def test_provider_timeout_leaves_ledger_untouched(self, store):
        user = add_user(store, "3.00")
        paypal = AsyncMock()
        paypal.execute_payment.side_effect = UpstreamTimeoutError("PayPal did not respond in time")
        service = ledger_service(store, paypal=paypal)

        with pytest.raises(UpstreamTimeoutError):
            await service.execute_paypal_payment(user.id, "PAY-1", "PAYER-1")

        assert await service.get_balance(user.id) == Decimal("3.00")
        assert (await service.list_transactions(user.id)).pagination.total == 0


class TestAdjustment:
    """Тесты ручной корректировки баланса."""

    @pytest.mark.asyncio
    async def test_positive_and_negative_adjustment(self, store):
        user = add_user(store, "2.00")
        service = ledger_service(store)

        assert await service.adjust_balance(user.id, Decimal("3.00"), "bonus", admin_id=99) == Decimal("5.00")
        assert await service.adjust_balance(user.id, Decimal("-1.50"), "fix", admin_id=99) == Decimal("3.50")

        page = await service.list_transactions(user.id, TransactionType.ADJUSTMENT)
        assert page.pagination.total == 2
        assert all(t.method == PaymentMethod.ADMIN for t in page.items)

    @pytest.mark.asyncio
    async def test_negative_adjustment_cannot_overdraw(self, store):
        user = add_user(store, "1.00")

        with pytest.raises(InsufficientBalanceError):
            await ledger_service(store).adjust_balance(user.id, Decimal("-2.00"), "fix", admin_id=99)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def stripe_intent(status: str = "succeeded", user_id: int = 1) -> dict:
    return {
        "id": "pi_123",
        "status": status,
        "amount": 2550,
        "currency": "usd",
        "metadata": {"userId": str(user_id)},
    }


class TestStripeClient:
    """Тесты клиента Stripe."""

    @pytest.mark.asyncio
    async def test_succeeded_intent(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/payment_intents/pi_123")
            return httpx.Response(200, json=stripe_intent())

        stripe = StripeClient("sk_test", "https://stripe.test/v1", mock_client(handler))
        payment = await stripe.confirm_payment("pi_123", 1)

        assert payment.amount == Decimal("25.50")
        assert payment.currency == "USD"
        assert payment.provider_payment_id == "pi_123"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "intent",
        [stripe_intent(status="requires_payment_method"), stripe_intent(user_id=2)],
    )
    async def test_rejected_intent(self, intent):
        stripe = StripeClient(
            "sk_test",
            "https://stripe.test/v1",
            mock_client(lambda request: httpx.Response(200, json=intent)),
        )

        with pytest.raises(InvalidParameterError):
            await stripe.confirm_payment("pi_123", 1)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        stripe = StripeClient("sk_test", "https://stripe.test/v1", mock_client(handler))

        with pytest.raises(UpstreamTimeoutError):
            await stripe.confirm_payment("pi_123", 1)

    @pytest.mark.asyncio
    async def test_not_configured(self):
        stripe = StripeClient("", "https://stripe.test/v1")

        assert not stripe.enabled
        with pytest.raises(UpstreamServiceError):
            await stripe.confirm_payment("pi_123", 1)


class TestPayPalClient:
    """Тесты клиента PayPal."""

    @staticmethod
    def handler(state: str):
        def handle(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/oauth2/token":
                return httpx.Response(200, json={"access_token": "token"})
            assert request.headers["Authorization"] == "Bearer token"
            assert json.loads(request.content) == {"payer_id": "PAYER-1"}
            return httpx.Response(
                200,
                json={
                    "id": "PAY-1",
                    "state": state,
                    "transactions": [{"amount": {"total": "12.00", "currency": "USD"}}],
                },
            )

        return handle

    @pytest.mark.asyncio
    async def test_approved_payment(self):
        paypal = PayPalClient(
            "client", "secret", "https://paypal.test", mock_client(self.handler("approved"))
        )

        payment = await paypal.execute_payment("PAY-1", "PAYER-1")

        assert payment.amount == Decimal("12.00")
        assert payment.method == PaymentMethod.PAYPAL

    @pytest.mark.asyncio
    async def test_not_approved(self):
        paypal = PayPalClient(
            "client", "secret", "https://paypal.test", mock_client(self.handler("failed"))
        )

        with pytest.raises(InvalidParameterError):
            await paypal.execute_payment("PAY-1", "PAYER-1")

    @pytest.mark.asyncio
    async def test_upstream_error_status(self):
        paypal = PayPalClient(
            "client",
            "secret",
            "https://paypal.test",
            mock_client(lambda request: httpx.Response(500)),
        )

        with pytest.raises(UpstreamServiceError):
            await paypal.execute_payment("PAY-1", "PAYER-1")


class TestPaymentCreation:
    """Тесты создания платежей для пополнения."""

    @pytest.mark.asyncio
    async def test_below_minimum_rejected(self, store):
        stripe = AsyncMock()
        service = ledger_service(store, stripe=stripe)

        with pytest.raises(InvalidParameterError):
            await service.create_stripe_payment(1, "user@example.com", Decimal("0.99"))

        stripe.create_payment_intent.assert_not_called()

    @pytest.mark.asyncio
    async def test_default_currency(self, store):
        paypal = AsyncMock()
        paypal.create_payment.return_value = PayPalPaymentLink(
            payment_id="PAY-1", approval_url="https://paypal.test/approve"
        )
        service = ledger_service(store, paypal=paypal)

        link = await service.create_paypal_payment(7, Decimal("5"))

        assert link.payment_id == "PAY-1"
        paypal.create_payment.assert_called_once_with(Decimal("5.00"), "USD", 7)

    @pytest.mark.asyncio
    async def test_stripe_intent_created_for_user(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.path.endswith("/payment_intents")
            form = dict(httpx.QueryParams(request.content.decode()))
            assert form == {
                "amount": "1050",
                "currency": "usd",
                "metadata[userId]": "1",
                "metadata[email]": "user@example.com",
            }
            return httpx.Response(200, json={"id": "pi_9", "client_secret": "pi_9_secret"})

        stripe = StripeClient("sk_test", "https://stripe.test/v1", mock_client(handler))
        intent = await stripe.create_payment_intent(
            Decimal("10.50"), "USD", 1, "user@example.com"
        )

        assert intent.payment_intent_id == "pi_9"
        assert intent.client_secret == "pi_9_secret"

    @pytest.mark.asyncio
    async def test_created_intent_can_be_confirmed(self):
        intents = {}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                form = dict(httpx.QueryParams(request.content.decode()))
                intents["pi_9"] = {
                    "id": "pi_9",
                    "status": "succeeded",
                    "amount": int(form["amount"]),
                    "currency": form["currency"],
                    "metadata": {"userId": form["metadata[userId]"]},
                    "client_secret": "pi_9_secret",
                }
                return httpx.Response(200, json=intents["pi_9"])
            return httpx.Response(200, json=intents["pi_9"])

        stripe = StripeClient("sk_test", "https://stripe.test/v1", mock_client(handler))
        await stripe.create_payment_intent(Decimal("3.00"), "USD", 5, "user@example.com")

        payment = await stripe.confirm_payment("pi_9", 5)

        assert payment.amount == Decimal("3.00")

    @pytest.mark.asyncio
    async def test_paypal_payment_created(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/oauth2/token":
                return httpx.Response(200, json={"access_token": "token"})
            body = json.loads(request.content)
            transaction = body["transactions"][0]
            assert transaction["amount"] == {"total": "12.00", "currency": "USD"}
            assert transaction["custom"] == "3"
            return httpx.Response(
                200,
                json={
                    "id": "PAY-2",
                    "links": [
                        {"rel": "self", "href": "https://paypal.test/self"},
                        {"rel": "approval_url", "href": "https://paypal.test/approve"},
                    ],
                },
            )

        paypal = PayPalClient("client", "secret", "https://paypal.test", mock_client(handler))
        link = await paypal.create_payment(Decimal("12"), "usd", 3)

        assert link.payment_id == "PAY-2"
        assert link.approval_url == "https://paypal.test/approve"

    @pytest.mark.asyncio
    async def test_paypal_without_approval_link(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1/oauth2/token":
                return httpx.Response(200, json={"access_token": "token"})
            return httpx.Response(200, json={"id": "PAY-2", "links": []})

        paypal = PayPalClient("client", "secret", "https://paypal.test", mock_client(handler))

        with pytest.raises(UpstreamServiceError):
            await paypal.create_payment(Decimal("12"), "USD", 3)


class TestCreditIntegrityErrors:
    """Ошибки целостности при зачислении."""

    @staticmethod
    def mock_uow(existing=None):
        uow = AsyncMock()
        uow.ledger = AsyncMock()
        uow.ledger.get_by_external_reference.side_effect = [None, existing]
        uow.ledger.increment_balance.return_value = Decimal("5.00")
        uow.ledger.add_transaction.side_effect = IntegrityError(
            "INSERT INTO transactions", {}, Exception("constraint failed")
        )
        return uow

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_reported(self):
        uow = self.mock_uow(existing=AsyncMock())
        service = LedgerService(uow, stripe=AsyncMock(), paypal=AsyncMock())

        with pytest.raises(DuplicatePaymentError):
            await service.credit(1, Decimal("5.00"), stripe_meta("pi_1"))

    @pytest.mark.asyncio
    async def test_other_violation_is_internal(self):
        uow = self.mock_uow(existing=None)
        service = LedgerService(uow, stripe=AsyncMock(), paypal=AsyncMock())

        with pytest.raises(InternalError):
            await service.credit(1, Decimal("5.00"), stripe_meta("pi_1"))

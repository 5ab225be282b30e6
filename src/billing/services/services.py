"""Сервис баланса и журнала операций."""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError

from base.config import get_settings
from base.data_structures import Page, Pagination
from base.exceptions import (
    DuplicatePaymentError,
    InsufficientBalanceError,
    InternalError,
    InvalidParameterError,
    NotFoundError,
)
from billing.adapters.repositories import ILedgerRepository
from billing.domain.models import (
    ConfirmedPayment,
    CreditMeta,
    DebitMeta,
    NewTransaction,
    PaymentMethod,
    PaymentResult,
    PayPalPaymentLink,
    StripePaymentIntent,
    Transaction,
    TransactionType,
)
from billing.services.payment_providers import PayPalClient, StripeClient

from .unit_of_work import ILedgerUnitOfWork

logger = logging.getLogger(__name__)

settings = get_settings()

CENT = Decimal("0.01")


def _validate_amount(amount: Decimal) -> Decimal:
    amount = Decimal(str(amount))
    if amount <= 0:
        raise InvalidParameterError("Amount must be positive")
    return amount.quantize(CENT)


async def apply_credit(
    ledger: ILedgerRepository, user_id: int, amount: Decimal, meta: CreditMeta
) -> Transaction:
    """Зачисление в рамках уже открытой единицы работы."""
    amount = _validate_amount(amount)
    if meta.external_reference and await ledger.get_by_external_reference(
        meta.external_reference
    ):
        raise DuplicatePaymentError(f"Payment {meta.external_reference} already processed")

    new_balance = await ledger.increment_balance(user_id, amount)
    if new_balance is None:
        raise NotFoundError(f"User {user_id} not found")

    return await ledger.add_transaction(
        NewTransaction(
            user_id=user_id,
            type=meta.type,
            amount=amount,
            currency=meta.currency,
            method=meta.method,
            external_reference=meta.external_reference,
            balance_after=new_balance,
            description=meta.description,
        )
    )


async def apply_debit(
    ledger: ILedgerRepository, user_id: int, amount: Decimal, meta: DebitMeta
) -> Transaction:
    """Списание в рамках уже открытой единицы работы."""
    amount = _validate_amount(amount)
    new_balance = await ledger.decrement_balance_if_sufficient(user_id, amount)
    if new_balance is None:
        if await ledger.get_balance(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        raise InsufficientBalanceError("Insufficient balance")

    return await ledger.add_transaction(
        NewTransaction(
            user_id=user_id,
            type=meta.type,
            amount=amount,
            currency=meta.currency,
            method=meta.method,
            request_id=meta.request_id,
            balance_after=new_balance,
            description=meta.description,
        )
    )


class LedgerService:
    """Сервис баланса пользователей.

    Каждое изменение баланса выполняется одним условным UPDATE и
    сопровождается неизменяемой записью в журнале в той же транзакции.
    """

    def __init__(
        self,
        uow: ILedgerUnitOfWork,
        stripe: Optional[StripeClient] = None,
        paypal: Optional[PayPalClient] = None,
    ) -> None:
        self.uow = uow
        self.stripe = stripe or StripeClient()
        self.paypal = paypal or PayPalClient()

    async def get_balance(self, user_id: int) -> Decimal:
        """Текущий баланс пользователя."""
        async with self.uow:
            balance = await self.uow.ledger.get_balance(user_id)
        if balance is None:
            raise NotFoundError(f"User {user_id} not found")
        return balance

    async def credit(self, user_id: int, amount: Decimal, meta: CreditMeta) -> Decimal:
        """Зачисление средств; повторный внешний платеж отклоняется."""
        try:
            async with self.uow:
                transaction = await apply_credit(self.uow.ledger, user_id, amount, meta)
                await self.uow.commit()
        except IntegrityError as e:
            # Параллельное зачисление того же платежа успело раньше
            if meta.external_reference and await self._is_recorded(meta.external_reference):
                raise DuplicatePaymentError(
                    f"Payment {meta.external_reference} already processed"
                ) from e
            logger.error(f"Failed to credit user {user_id}: {e}")
            raise InternalError("Failed to record payment") from e
        logger.info(
            f"Credited {transaction.amount} {transaction.currency} to user {user_id} "
            f"({meta.method.value}), balance {transaction.balance_after}"
        )
        return transaction.balance_after

    async def _is_recorded(self, reference: str) -> bool:
        async with self.uow:
            return await self.uow.ledger.get_by_external_reference(reference) is not None

    async def debit(self, user_id: int, amount: Decimal, meta: Optional[DebitMeta] = None) -> Decimal:
        """Списание средств, только если их достаточно."""
        async with self.uow:
            transaction = await apply_debit(
                self.uow.ledger, user_id, amount, meta or DebitMeta()
            )
            await self.uow.commit()
        logger.info(f"Debited {transaction.amount} from user {user_id}, balance {transaction.balance_after}")
        return transaction.balance_after

    async def list_transactions(
        self,
        user_id: Optional[int] = None,
        type: Optional[TransactionType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[Transaction]:
        """История операций."""
        async with self.uow:
            items, total = await self.uow.ledger.list_transactions(user_id, type, page, limit)
        return Page[Transaction](items=items, pagination=Pagination.build(page, limit, total))

    async def get_revenue(self) -> Decimal:
        """Сумма всех покупок номеров."""
        async with self.uow:
            return await self.uow.ledger.sum_by_type(TransactionType.PURCHASE)

    def _payment_amount(self, amount: Decimal, currency: Optional[str]) -> tuple[Decimal, str]:
        amount = _validate_amount(amount)
        if amount < settings.min_payment_amount:
            raise InvalidParameterError(
                f"Minimum payment amount is {settings.min_payment_amount}"
            )
        return amount, (currency or settings.default_currency).upper()

    async def create_stripe_payment(
        self, user_id: int, email: str, amount: Decimal, currency: Optional[str] = None
    ) -> StripePaymentIntent:
        """Создание PaymentIntent для пополнения баланса."""
        amount, currency = self._payment_amount(amount, currency)
        intent = await self.stripe.create_payment_intent(amount, currency, user_id, email)
        logger.info(f"Created Stripe payment intent {intent.payment_intent_id} for user {user_id}")
        return intent

    async def create_paypal_payment(
        self, user_id: int, amount: Decimal, currency: Optional[str] = None
    ) -> PayPalPaymentLink:
        """Создание платежа PayPal для пополнения баланса."""
        amount, currency = self._payment_amount(amount, currency)
        link = await self.paypal.create_payment(amount, currency, user_id)
        logger.info(f"Created PayPal payment {link.payment_id} for user {user_id}")
        return link

    async def confirm_stripe_payment(self, user_id: int, payment_intent_id: str) -> PaymentResult:
        """Подтверждение оплаты Stripe и зачисление суммы."""
        payment = await self.stripe.confirm_payment(payment_intent_id, user_id)
        return await self._credit_payment(user_id, payment)

    async def execute_paypal_payment(
        self, user_id: int, payment_id: str, payer_id: str
    ) -> PaymentResult:
        """Проведение платежа PayPal и зачисление суммы."""
        payment = await self.paypal.execute_payment(payment_id, payer_id)
        return await self._credit_payment(user_id, payment)

    async def _credit_payment(self, user_id: int, payment: ConfirmedPayment) -> PaymentResult:
        new_balance = await self.credit(
            user_id,
            payment.amount,
            CreditMeta(
                currency=payment.currency,
                method=payment.method,
                external_reference=payment.provider_payment_id,
                description=f"{payment.method.value} payment",
            ),
        )
        return PaymentResult(
            amount=payment.amount, currency=payment.currency, new_balance=new_balance
        )

    def get_payment_methods(self) -> list[dict]:
        """Доступные способы пополнения."""
        return [
            {
                "id": PaymentMethod.STRIPE.value,
                "name": "Credit/Debit Card",
                "icon": "credit-card",
                "enabled": self.stripe.enabled,
            },
            {
                "id": PaymentMethod.PAYPAL.value,
                "name": "PayPal",
                "icon": "paypal",
                "enabled": self.paypal.enabled,
            },
        ]

    async def adjust_balance(
        self, user_id: int, amount: Decimal, reason: str, admin_id: int
    ) -> Decimal:
        """Ручная корректировка баланса администратором."""
        description = f"Adjustment by admin {admin_id}: {reason}"
        if amount > 0:
            new_balance = await self.credit(
                user_id,
                amount,
                CreditMeta(
                    method=PaymentMethod.ADMIN,
                    type=TransactionType.ADJUSTMENT,
                    description=description,
                ),
            )
        else:
            new_balance = await self.debit(
                user_id,
                -amount,
                DebitMeta(
                    method=PaymentMethod.ADMIN,
                    type=TransactionType.ADJUSTMENT,
                    description=description,
                ),
            )
        logger.info(f"Admin {admin_id} adjusted balance of user {user_id} by {amount}")
        return new_balance

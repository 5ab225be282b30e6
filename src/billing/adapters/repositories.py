"""Интерфейсы репозиториев журнала операций."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from billing.domain.models import NewTransaction, Transaction, TransactionType


class ILedgerRepository(ABC):
    """Интерфейс репозитория баланса и журнала операций.

    Баланс меняется только атомарным инкрементом/декрементом на стороне
    хранилища, без чтения-изменения-записи.
    """

    @abstractmethod
    async def get_balance(self, user_id: int) -> Optional[Decimal]:
        """Текущий баланс пользователя."""
        raise NotImplementedError

    @abstractmethod
    async def increment_balance(self, user_id: int, amount: Decimal) -> Optional[Decimal]:
        """Увеличение баланса; None, если пользователя нет."""
        raise NotImplementedError

    @abstractmethod
    async def decrement_balance_if_sufficient(
        self, user_id: int, amount: Decimal
    ) -> Optional[Decimal]:
        """Уменьшение баланса, только если средств достаточно; иначе None."""
        raise NotImplementedError

    @abstractmethod
    async def add_transaction(self, transaction: NewTransaction) -> Transaction:
        """Запись операции в журнал."""
        raise NotImplementedError

    @abstractmethod
    async def get_by_external_reference(self, reference: str) -> Optional[Transaction]:
        """Поиск операции по идентификатору внешнего платежа."""
        raise NotImplementedError

    @abstractmethod
    async def list_transactions(
        self,
        user_id: Optional[int],
        type: Optional[TransactionType],
        page: int,
        limit: int,
    ) -> tuple[list[Transaction], int]:
        """Постраничный список операций."""
        raise NotImplementedError

    @abstractmethod
    async def sum_by_type(self, type: TransactionType) -> Decimal:
        """Сумма операций данного типа."""
        raise NotImplementedError

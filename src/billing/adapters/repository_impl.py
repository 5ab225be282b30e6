"""Реализации репозиториев журнала операций."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from base.exceptions import DuplicatePaymentError
from base.orm import as_utc
from base.unit_of_work import InMemoryStore
from base.utils import utc_now
from billing.adapters.orm import TransactionORM
from billing.domain.models import NewTransaction, Transaction, TransactionType
from users.adapters.orm import UserORM

from .repositories import ILedgerRepository


class InMemoryLedgerRepository(ILedgerRepository):
    """In-memory репозиторий журнала для тестов."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    @property
    def _users(self) -> dict:
        return self.store.table("users")

    @property
    def _transactions(self) -> dict[int, Transaction]:
        return self.store.table("transactions")

    async def get_balance(self, user_id: int) -> Optional[Decimal]:
        user = self._users.get(user_id)
        return user.balance if user else None

    async def increment_balance(self, user_id: int, amount: Decimal) -> Optional[Decimal]:
        user = self._users.get(user_id)
        if user is None:
            return None
        self._users[user_id] = user.model_copy(update={"balance": user.balance + amount})
        return self._users[user_id].balance

    async def decrement_balance_if_sufficient(
        self, user_id: int, amount: Decimal
    ) -> Optional[Decimal]:
        user = self._users.get(user_id)
        if user is None or user.balance < amount:
            return None
        self._users[user_id] = user.model_copy(update={"balance": user.balance - amount})
        return self._users[user_id].balance

    async def add_transaction(self, transaction: NewTransaction) -> Transaction:
        reference = transaction.external_reference
        if reference and any(
            t.external_reference == reference for t in self._transactions.values()
        ):
            raise DuplicatePaymentError(f"Payment {reference} already processed")
        record = Transaction(
            id=self.store.next_id("transactions"),
            created_at=utc_now(),
            **transaction.model_dump(),
        )
        self._transactions[record.id] = record
        return record

    async def get_by_external_reference(self, reference: str) -> Optional[Transaction]:
        return next(
            (t for t in self._transactions.values() if t.external_reference == reference),
            None,
        )

    async def list_transactions(
        self,
        user_id: Optional[int],
        type: Optional[TransactionType],
        page: int,
        limit: int,
    ) -> tuple[list[Transaction], int]:
        items = [
            t
            for t in sorted(self._transactions.values(), key=lambda t: t.id, reverse=True)
            if (user_id is None or t.user_id == user_id) and (type is None or t.type == type)
        ]
        start = (page - 1) * limit
        return items[start:start + limit], len(items)

    async def sum_by_type(self, type: TransactionType) -> Decimal:
        return sum(
            (t.amount for t in self._transactions.values() if t.type == type),
            Decimal("0.00"),
        )


def _transaction_from_orm(orm: TransactionORM) -> Transaction:
    return Transaction(
        id=orm.id,
        user_id=orm.user_id,
        type=orm.type,
        amount=Decimal(str(orm.amount)),
        currency=orm.currency,
        method=orm.method,
        external_reference=orm.external_reference,
        request_id=orm.request_id,
        balance_after=Decimal(str(orm.balance_after)),
        description=orm.description or "",
        created_at=as_utc(orm.created_at),
    )


class PostgreSQLLedgerRepository(ILedgerRepository):
    """PostgreSQL репозиторий баланса и журнала."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_balance(self, user_id: int) -> Optional[Decimal]:
        """Текущий баланс пользователя."""
        result = await self.session.execute(
            select(UserORM.balance).where(UserORM.id == user_id)
        )
        balance = result.scalar_one_or_none()
        return Decimal(str(balance)) if balance is not None else None

    async def increment_balance(self, user_id: int, amount: Decimal) -> Optional[Decimal]:
        """Атомарное увеличение баланса (UPDATE ... RETURNING)."""
        result = await self.session.execute(
            update(UserORM)
            .where(UserORM.id == user_id)
            .values(balance=UserORM.balance + amount)
            .returning(UserORM.balance)
            .execution_options(synchronize_session=False)
        )
        balance = result.scalar_one_or_none()
        return Decimal(str(balance)) if balance is not None else None

    async def decrement_balance_if_sufficient(
        self, user_id: int, amount: Decimal
    ) -> Optional[Decimal]:
        """Условное атомарное списание: строка меняется только при balance >= amount."""
        result = await self.session.execute(
            update(UserORM)
            .where(UserORM.id == user_id, UserORM.balance >= amount)
            .values(balance=UserORM.balance - amount)
            .returning(UserORM.balance)
            .execution_options(synchronize_session=False)
        )
        balance = result.scalar_one_or_none()
        return Decimal(str(balance)) if balance is not None else None

    async def add_transaction(self, transaction: NewTransaction) -> Transaction:
        """Запись операции в журнал."""
        transaction_orm = TransactionORM(**transaction.model_dump(), created_at=utc_now())
        self.session.add(transaction_orm)
        await self.session.flush()
        return _transaction_from_orm(transaction_orm)

    async def get_by_external_reference(self, reference: str) -> Optional[Transaction]:
        """Поиск операции по идентификатору внешнего платежа."""
        result = await self.session.execute(
            select(TransactionORM).filter_by(external_reference=reference)
        )
        transaction_orm = result.scalar_one_or_none()
        return _transaction_from_orm(transaction_orm) if transaction_orm else None

    async def list_transactions(
        self,
        user_id: Optional[int],
        type: Optional[TransactionType],
        page: int,
        limit: int,
    ) -> tuple[list[Transaction], int]:
        """Постраничный список операций."""
        stmt = select(TransactionORM)
        if user_id is not None:
            stmt = stmt.where(TransactionORM.user_id == user_id)
        if type is not None:
            stmt = stmt.where(TransactionORM.type == type)
        total = await self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        )
        result = await self.session.execute(
            stmt.order_by(TransactionORM.id.desc()).offset((page - 1) * limit).limit(limit)
        )
        return (
            [_transaction_from_orm(t) for t in result.scalars().all()],
            int(total.scalar_one()),
        )

    async def sum_by_type(self, type: TransactionType) -> Decimal:
        """Сумма операций данного типа."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(TransactionORM.amount), 0)).where(
                TransactionORM.type == type
            )
        )
        return Decimal(str(result.scalar_one()))

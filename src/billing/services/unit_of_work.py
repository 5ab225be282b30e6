"""Unit of Work журнала операций."""

from sqlalchemy.ext.asyncio import AsyncSession

from base.unit_of_work import (
    AbstractUnitOfWork,
    InMemoryStore,
    InMemoryUnitOfWork,
    SqlAlchemyUnitOfWork,
)
from billing.adapters.repositories import ILedgerRepository
from billing.adapters.repository_impl import (
    InMemoryLedgerRepository,
    PostgreSQLLedgerRepository,
)
from users.adapters.repositories import IUserRepository
from users.adapters.repository_impl import (
    InMemoryUserRepository,
    PostgreSQLUserRepository,
)


class ILedgerUnitOfWork(AbstractUnitOfWork):
    """Интерфейс UoW журнала: баланс и пользователи в одной транзакции."""

    ledger: ILedgerRepository
    users: IUserRepository


class PostgreSQLLedgerUnitOfWork(SqlAlchemyUnitOfWork, ILedgerUnitOfWork):
    """PostgreSQL UoW журнала операций."""

    def _init_repositories(self, session: AsyncSession) -> None:
        self.ledger = PostgreSQLLedgerRepository(session)
        self.users = PostgreSQLUserRepository(session)


class InMemoryLedgerUnitOfWork(InMemoryUnitOfWork, ILedgerUnitOfWork):
    """In-memory UoW журнала операций."""

    def _init_repositories(self, store: InMemoryStore) -> None:
        self.ledger = InMemoryLedgerRepository(store)
        self.users = InMemoryUserRepository(store)

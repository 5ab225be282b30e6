"""Unit of Work жизненного цикла заявок."""

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
from catalog.adapters.repositories import (
    CatalogAbstractRepository,
    CatalogInMemoryRepository,
    CatalogSqlAlchemyRepository,
)
from number_requests.adapters.repositories import (
    NumberRequestAbstractRepository,
    NumberRequestInMemoryRepository,
    NumberRequestSqlAlchemyRepository,
)


class NumberRequestAbstractUnitOfWork(AbstractUnitOfWork):
    """Заявки, каталог и баланс в одной транзакции."""

    requests: NumberRequestAbstractRepository
    catalog: CatalogAbstractRepository
    ledger: ILedgerRepository


class PostgreSQLNumberRequestUnitOfWork(SqlAlchemyUnitOfWork, NumberRequestAbstractUnitOfWork):
    """UoW заявок для PostgreSQL."""

    def _init_repositories(self, session: AsyncSession) -> None:
        self.requests = NumberRequestSqlAlchemyRepository(session)
        self.catalog = CatalogSqlAlchemyRepository(session)
        self.ledger = PostgreSQLLedgerRepository(session)


class InMemoryNumberRequestUnitOfWork(InMemoryUnitOfWork, NumberRequestAbstractUnitOfWork):
    """In-memory UoW заявок."""

    def _init_repositories(self, store: InMemoryStore) -> None:
        self.requests = NumberRequestInMemoryRepository(store)
        self.catalog = CatalogInMemoryRepository(store)
        self.ledger = InMemoryLedgerRepository(store)

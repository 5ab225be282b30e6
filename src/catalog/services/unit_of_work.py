"""Модуль для единицы работы (Unit of Work) каталога."""

from sqlalchemy.ext.asyncio import AsyncSession

from base.unit_of_work import (
    AbstractUnitOfWork,
    InMemoryStore,
    InMemoryUnitOfWork,
    SqlAlchemyUnitOfWork,
)
from catalog.adapters.repositories import (
    CatalogAbstractRepository,
    CatalogInMemoryRepository,
    CatalogSqlAlchemyRepository,
)


class CatalogAbstractUnitOfWork(AbstractUnitOfWork):
    """Абстракция UoW каталога."""

    catalog: CatalogAbstractRepository


class PostgreSQLCatalogUnitOfWork(SqlAlchemyUnitOfWork, CatalogAbstractUnitOfWork):
    """UoW каталога для PostgreSQL."""

    def _init_repositories(self, session: AsyncSession) -> None:
        self.catalog = CatalogSqlAlchemyRepository(session)


class InMemoryCatalogUnitOfWork(InMemoryUnitOfWork, CatalogAbstractUnitOfWork):
    """In-memory UoW каталога."""

    def _init_repositories(self, store: InMemoryStore) -> None:
        self.catalog = CatalogInMemoryRepository(store)

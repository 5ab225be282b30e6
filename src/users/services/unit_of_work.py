"""Unit of Work для работы с пользователями."""

from sqlalchemy.ext.asyncio import AsyncSession

from base.unit_of_work import (
    AbstractUnitOfWork,
    InMemoryStore,
    InMemoryUnitOfWork,
    SqlAlchemyUnitOfWork,
)
from users.adapters.repositories import IUserRepository
from users.adapters.repository_impl import (
    InMemoryUserRepository,
    PostgreSQLUserRepository,
)


class IUserUnitOfWork(AbstractUnitOfWork):
    """Интерфейс Unit of Work для пользователей."""

    users: IUserRepository


class InMemoryUserUnitOfWork(InMemoryUnitOfWork, IUserUnitOfWork):
    """In-memory Unit of Work для пользователей."""

    def _init_repositories(self, store: InMemoryStore) -> None:
        self.users = InMemoryUserRepository(store)


class PostgreSQLUserUnitOfWork(SqlAlchemyUnitOfWork, IUserUnitOfWork):
    """PostgreSQL Unit of Work для пользователей."""

    def _init_repositories(self, session: AsyncSession) -> None:
        self.users = PostgreSQLUserRepository(session)

"""Базовые реализации Unit of Work."""

import abc
import asyncio
import copy
from collections import defaultdict
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession


class InMemoryStore:
    """Общее in-memory хранилище таблиц для тестов и локального запуска."""

    def __init__(self) -> None:
        """Инициализация хранилища."""
        self.tables: dict[str, dict[Any, Any]] = defaultdict(dict)
        self.sequences: dict[str, int] = defaultdict(int)
        self.lock = asyncio.Lock()

    def table(self, name: str) -> dict[Any, Any]:
        """Получение таблицы по имени."""
        return self.tables[name]

    def next_id(self, name: str) -> int:
        """Следующее значение последовательности."""
        self.sequences[name] += 1
        return self.sequences[name]

    def snapshot(self) -> tuple[dict, dict]:
        """Снимок состояния для отката."""
        return copy.deepcopy(dict(self.tables)), dict(self.sequences)

    def restore(self, state: tuple[dict, dict]) -> None:
        """Восстановление состояния из снимка."""
        tables, sequences = copy.deepcopy(state[0]), state[1]
        self.tables = defaultdict(dict, tables)
        self.sequences = defaultdict(int, sequences)


class AbstractUnitOfWork(abc.ABC):
    """Абстракция над атомарной операцией (единицей работы)."""

    async def __aenter__(self) -> "AbstractUnitOfWork":
        """Инициализация UoW через менеджер контекста."""
        return self

    async def __aexit__(self, *args) -> None:
        """Откат незафиксированных изменений."""
        await self.rollback()

    @abc.abstractmethod
    async def commit(self) -> None:
        """Фиксация транзакции."""

    @abc.abstractmethod
    async def rollback(self) -> None:
        """Откат транзакции."""


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """UoW поверх одной сессии SQLAlchemy."""

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self.session_factory = session_factory

    @abc.abstractmethod
    def _init_repositories(self, session: AsyncSession) -> None:
        """Создание репозиториев на текущей сессии."""

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        """Открытие сессии и репозиториев."""
        self.session: AsyncSession = self.session_factory()
        self._init_repositories(self.session)
        return self

    async def __aexit__(self, *args) -> None:
        """Откат транзакции в случае исключения и закрытие сессии."""
        await super().__aexit__(*args)
        await self.session.close()

    async def commit(self) -> None:
        """Фиксация транзакции."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Откат транзакции."""
        await self.session.rollback()


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """In-memory UoW: сериализует единицы работы и откатывает по снимку."""

    def __init__(self, store: Optional[InMemoryStore] = None) -> None:
        self.store = store or InMemoryStore()

    @abc.abstractmethod
    def _init_repositories(self, store: InMemoryStore) -> None:
        """Создание репозиториев поверх хранилища."""

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        """Захват блокировки хранилища и снимок состояния."""
        await self.store.lock.acquire()
        self._snapshot = self.store.snapshot()
        self._init_repositories(self.store)
        return self

    async def __aexit__(self, *args) -> None:
        """Откат и освобождение блокировки."""
        try:
            await super().__aexit__(*args)
        finally:
            self.store.lock.release()

    async def commit(self) -> None:
        """Фиксация изменений."""
        self._snapshot = self.store.snapshot()

    async def rollback(self) -> None:
        """Откат изменений."""
        self.store.restore(self._snapshot)

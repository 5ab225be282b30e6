"""Базовые классы и функции для работы с ORM."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from base.config import get_db_url

# Создаем базовый класс для моделей
Base = declarative_base()

# Создаем асинхронный движок
engine = create_async_engine(get_db_url(), echo=False, future=True)

# Создаем фабрику сессий
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Получение фабрики сессий."""
    return async_session


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Приведение даты из БД к UTC (SQLite возвращает naive datetime)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def init_db():
    """Инициализация базы данных."""
    # Регистрируем все модели в метаданных
    import billing.adapters.orm  # noqa: F401
    import catalog.adapters.orm  # noqa: F401
    import number_requests.adapters.orm  # noqa: F401
    import users.adapters.orm  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

"""Интерфейсы репозиториев для работы с пользователями."""

from abc import ABC, abstractmethod
from typing import Optional

from users.domain.models import NewUser, User, UserPreferences


class IUserRepository(ABC):
    """Интерфейс репозитория пользователей."""

    @abstractmethod
    async def add_user(self, user: NewUser) -> User:
        """Добавление пользователя."""
        raise NotImplementedError

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Получение пользователя по email."""
        raise NotImplementedError

    @abstractmethod
    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Получение пользователя по ID."""
        raise NotImplementedError

    @abstractmethod
    async def get_user_by_api_key(self, api_key: str) -> Optional[User]:
        """Получение пользователя по API ключу."""
        raise NotImplementedError

    @abstractmethod
    async def update_username(self, user_id: int, username: str) -> bool:
        """Изменение имени пользователя."""
        raise NotImplementedError

    @abstractmethod
    async def update_preferences(self, user_id: int, preferences: UserPreferences) -> bool:
        """Изменение настроек пользователя."""
        raise NotImplementedError

    @abstractmethod
    async def update_password_hash(self, user_id: int, password_hash: str) -> bool:
        """Изменение хеша пароля."""
        raise NotImplementedError

    @abstractmethod
    async def update_api_key(self, user_id: int, api_key: str) -> bool:
        """Замена API ключа."""
        raise NotImplementedError

    @abstractmethod
    async def set_active(self, user_id: int, is_active: bool) -> bool:
        """Блокировка или разблокировка пользователя."""
        raise NotImplementedError

    @abstractmethod
    async def list_users(
        self, page: int, limit: int, search: Optional[str] = None
    ) -> tuple[list[User], int]:
        """Постраничный список пользователей."""
        raise NotImplementedError

    @abstractmethod
    async def count_users(self) -> tuple[int, int]:
        """Количество всех и активных пользователей."""
        raise NotImplementedError

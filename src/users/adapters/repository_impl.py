"""Реализации репозиториев для работы с пользователями."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from base.orm import as_utc
from base.unit_of_work import InMemoryStore
from base.utils import utc_now
from users.adapters.orm import UserORM
from users.domain.models import NewUser, User, UserPreferences

from .repositories import IUserRepository


class InMemoryUserRepository(IUserRepository):
    """In-memory репозиторий пользователей для тестов."""

    def __init__(self, store: InMemoryStore) -> None:
        """Инициализация репозитория."""
        self.store = store

    @property
    def users(self) -> dict[int, User]:
        return self.store.table("users")

    def _find(self, predicate) -> Optional[User]:
        user = next((u for u in self.users.values() if predicate(u)), None)
        return user.model_copy(deep=True) if user else None

    async def add_user(self, user: NewUser) -> User:
        """Добавление пользователя."""
        new_user = User(
            id=self.store.next_id("users"),
            email=user.email,
            username=user.username,
            password_hash=user.password_hash,
            api_key=user.api_key,
            role=user.role,
            created_at=utc_now(),
            balance=Decimal("0.00"),
        )
        self.users[new_user.id] = new_user
        return new_user.model_copy(deep=True)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Получение пользователя по email."""
        return self._find(lambda u: u.email == email)

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Получение пользователя по ID."""
        return self._find(lambda u: u.id == user_id)

    async def get_user_by_api_key(self, api_key: str) -> Optional[User]:
        """Получение пользователя по API ключу."""
        return self._find(lambda u: u.api_key == api_key)

    def _update(self, user_id: int, **fields) -> bool:
        if user_id not in self.users:
            return False
        self.users[user_id] = self.users[user_id].model_copy(update=fields)
        return True

    async def update_username(self, user_id: int, username: str) -> bool:
        return self._update(user_id, username=username)

    async def update_preferences(self, user_id: int, preferences: UserPreferences) -> bool:
        return self._update(user_id, preferences=preferences)

    async def update_password_hash(self, user_id: int, password_hash: str) -> bool:
        return self._update(user_id, password_hash=password_hash)

    async def update_api_key(self, user_id: int, api_key: str) -> bool:
        return self._update(user_id, api_key=api_key)

    async def set_active(self, user_id: int, is_active: bool) -> bool:
        return self._update(user_id, is_active=is_active)

    async def list_users(
        self, page: int, limit: int, search: Optional[str] = None
    ) -> tuple[list[User], int]:
        users = [
            u
            for u in sorted(self.users.values(), key=lambda u: u.id, reverse=True)
            if not search or search.lower() in u.email.lower() or search.lower() in u.username.lower()
        ]
        start = (page - 1) * limit
        return [u.model_copy(deep=True) for u in users[start:start + limit]], len(users)

    async def count_users(self) -> tuple[int, int]:
        return len(self.users), sum(1 for u in self.users.values() if u.is_active)


def _user_from_orm(user_orm: UserORM) -> User:
    return User(
        id=user_orm.id,
        email=user_orm.email,
        username=user_orm.username or user_orm.email.split("@")[0],
        password_hash=user_orm.password_hash,
        balance=Decimal(str(user_orm.balance)),
        api_key=user_orm.api_key,
        role=user_orm.role,
        is_active=user_orm.is_active,
        preferences=UserPreferences(
            language=user_orm.language,
            email_notifications=user_orm.email_notifications,
            sms_notifications=user_orm.sms_notifications,
        ),
        created_at=as_utc(user_orm.created_at),
    )


class PostgreSQLUserRepository(IUserRepository):
    """PostgreSQL репозиторий пользователей."""

    def __init__(self, session: AsyncSession) -> None:
        """Инициализация репозитория."""
        self.session = session

    async def add_user(self, user: NewUser) -> User:
        """Добавление пользователя."""
        user_orm = UserORM(
            email=user.email,
            username=user.username,
            password_hash=user.password_hash,
            api_key=user.api_key,
            role=user.role,
            balance=Decimal("0.00"),
            created_at=utc_now(),
        )
        self.session.add(user_orm)
        await self.session.flush()
        return _user_from_orm(user_orm)

    async def _get_one(self, **filters) -> Optional[User]:
        result = await self.session.execute(select(UserORM).filter_by(**filters))
        user_orm = result.scalars().first()
        return _user_from_orm(user_orm) if user_orm else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Получение пользователя по email."""
        return await self._get_one(email=email)

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Получение пользователя по ID."""
        return await self._get_one(id=user_id)

    async def get_user_by_api_key(self, api_key: str) -> Optional[User]:
        """Получение пользователя по API ключу."""
        return await self._get_one(api_key=api_key)

    async def _update(self, user_id: int, **values) -> bool:
        result = await self.session.execute(
            update(UserORM).where(UserORM.id == user_id).values(**values)
        )
        return bool(result.rowcount > 0)

    async def update_username(self, user_id: int, username: str) -> bool:
        """Изменение имени пользователя."""
        return await self._update(user_id, username=username)

    async def update_preferences(self, user_id: int, preferences: UserPreferences) -> bool:
        """Изменение настроек пользователя."""
        return await self._update(user_id, **preferences.model_dump())

    async def update_password_hash(self, user_id: int, password_hash: str) -> bool:
        """Изменение хеша пароля."""
        return await self._update(user_id, password_hash=password_hash)

    async def update_api_key(self, user_id: int, api_key: str) -> bool:
        """Замена API ключа."""
        return await self._update(user_id, api_key=api_key)

    async def set_active(self, user_id: int, is_active: bool) -> bool:
        """Блокировка или разблокировка пользователя."""
        return await self._update(user_id, is_active=is_active)

    async def list_users(
        self, page: int, limit: int, search: Optional[str] = None
    ) -> tuple[list[User], int]:
        """Постраничный список пользователей."""
        stmt = select(UserORM)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(UserORM.email.ilike(pattern), UserORM.username.ilike(pattern))
            )
        total = await self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        )
        result = await self.session.execute(
            stmt.order_by(UserORM.id.desc()).offset((page - 1) * limit).limit(limit)
        )
        return [_user_from_orm(u) for u in result.scalars().all()], int(total.scalar_one())

    async def count_users(self) -> tuple[int, int]:
        """Количество всех и активных пользователей."""
        result = await self.session.execute(
            select(
                func.count(UserORM.id),
                func.count(UserORM.id).filter(UserORM.is_active.is_(True)),
            )
        )
        total, active = result.one()
        return int(total), int(active)

"""Сервисы для работы с пользователями."""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from base.config import get_admin_emails, get_settings
from base.data_structures import Page, Pagination, TokenResponse
from base.exceptions import (
    AuthenticationError,
    InvalidParameterError,
    NotFoundError,
)
from base.utils import JWTHandler, generate_api_key, hash_password, verify_password
from users.domain.models import (
    NewUser,
    PasswordChangeDTO,
    ProfileUpdateDTO,
    User,
    UserCreateDTO,
    UserLoginDTO,
    UserPreferences,
    UserProfile,
    UserRole,
)

from .unit_of_work import IUserUnitOfWork

logger = logging.getLogger(__name__)

settings = get_settings()


class UserService:
    """Сервис для работы с пользователями."""

    def __init__(self, uow: IUserUnitOfWork) -> None:
        """Инициализация сервиса."""
        self.uow = uow
        self.jwt_handler = JWTHandler(settings.secret_key)

    def _issue_tokens(self, user_id: int) -> TokenResponse:
        return TokenResponse(
            access_token=self.jwt_handler.create_access_token(user_id),
            refresh_token=self.jwt_handler.create_refresh_token(user_id),
            expires_in=settings.access_token_expires_minutes * 60,
        )

    async def register(self, data: UserCreateDTO) -> User:
        """Регистрация пользователя."""
        email = data.email.lower()
        role = UserRole.ADMIN if email in get_admin_emails() else UserRole.USER
        async with self.uow:
            if await self.uow.users.get_user_by_email(email):
                raise InvalidParameterError("User with this email already exists")
            try:
                user = await self.uow.users.add_user(
                    NewUser(
                        email=email,
                        username=data.username or email.split("@")[0],
                        password_hash=hash_password(data.password),
                        api_key=generate_api_key(),
                        role=role,
                    )
                )
                await self.uow.commit()
            except IntegrityError as e:
                raise InvalidParameterError("User with this email already exists") from e
        logger.info(f"Registered user {user.id} with role {role.value}")
        return user

    async def authenticate(self, data: UserLoginDTO) -> TokenResponse:
        """Вход по email и паролю."""
        async with self.uow:
            user = await self.uow.users.get_user_by_email(data.email.lower())
        if user is None or not verify_password(data.password, user.password_hash):
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            raise AuthenticationError("Account is deactivated")
        return self._issue_tokens(user.id)

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Новая пара токенов по refresh токену."""
        user_id = self.jwt_handler.verify_refresh_token(refresh_token)
        await self.get_active_user(user_id)
        return self._issue_tokens(user_id)

    async def get_user(self, user_id: int) -> User:
        async with self.uow:
            user = await self.uow.users.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_active_user(self, user_id: int) -> User:
        """Пользователь из токена; удаленный или заблокированный не проходит."""
        async with self.uow:
            user = await self.uow.users.get_user_by_id(user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("User not found or inactive")
        return user

    async def get_user_by_api_key(self, api_key: Optional[str]) -> User:
        """Пользователь по API ключу."""
        if not api_key:
            raise AuthenticationError("API token is required")
        async with self.uow:
            user = await self.uow.users.get_user_by_api_key(api_key)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid API token")
        return user

    async def update_profile(self, user_id: int, data: ProfileUpdateDTO) -> User:
        async with self.uow:
            if data.username is not None:
                await self.uow.users.update_username(user_id, data.username)
                await self.uow.commit()
            user = await self.uow.users.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def change_password(self, user_id: int, data: PasswordChangeDTO) -> None:
        """Смена пароля с проверкой текущего."""
        async with self.uow:
            user = await self.uow.users.get_user_by_id(user_id)
            if user is None:
                raise NotFoundError("User not found")
            if not verify_password(data.current_password, user.password_hash):
                raise InvalidParameterError("Current password is incorrect")
            await self.uow.users.update_password_hash(user_id, hash_password(data.new_password))
            await self.uow.commit()
        logger.info(f"Password changed for user {user_id}")

    async def regenerate_api_key(self, user_id: int) -> str:
        """Выпуск нового API ключа; старый перестает работать."""
        api_key = generate_api_key()
        async with self.uow:
            if not await self.uow.users.update_api_key(user_id, api_key):
                raise NotFoundError("User not found")
            await self.uow.commit()
        logger.info(f"API key regenerated for user {user_id}")
        return api_key

    async def update_preferences(self, user_id: int, preferences: UserPreferences) -> UserPreferences:
        async with self.uow:
            if not await self.uow.users.update_preferences(user_id, preferences):
                raise NotFoundError("User not found")
            await self.uow.commit()
        return preferences

    async def list_users(
        self, page: int = 1, limit: int = 20, search: Optional[str] = None
    ) -> Page[UserProfile]:
        """Постраничный список пользователей для администратора."""
        async with self.uow:
            users, total = await self.uow.users.list_users(page, limit, search)
        return Page[UserProfile](
            items=[UserProfile.from_user(u) for u in users],
            pagination=Pagination.build(page, limit, total),
        )

    async def toggle_status(self, user_id: int) -> User:
        """Блокировка/разблокировка пользователя."""
        async with self.uow:
            user = await self.uow.users.get_user_by_id(user_id)
            if user is None:
                raise NotFoundError("User not found")
            await self.uow.users.set_active(user_id, not user.is_active)
            await self.uow.commit()
        logger.info(f"User {user_id} active={not user.is_active}")
        return user.model_copy(update={"is_active": not user.is_active})

    async def count_users(self) -> tuple[int, int]:
        async with self.uow:
            return await self.uow.users.count_users()

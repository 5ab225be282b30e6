"""Зависимости для API пользователей."""

from typing import Annotated

from fastapi import Depends

from base.dependencies import TokenDependency, get_db
from base.exceptions import AuthorizationError
from users.domain.models import User
from users.services.services import UserService
from users.services.unit_of_work import PostgreSQLUserUnitOfWork


async def get_user_service(db=Depends(get_db)) -> UserService:
    """Получение сервиса для работы с пользователями."""
    uow = PostgreSQLUserUnitOfWork(lambda: db)
    return UserService(uow)


UserServiceDependency = Annotated[UserService, Depends(get_user_service)]


async def get_current_user(token: TokenDependency, service: UserServiceDependency) -> User:
    """Активный пользователь из access токена."""
    return await service.get_active_user(token.id)


CurrentUserDependency = Annotated[User, Depends(get_current_user)]


async def get_admin_user(user: CurrentUserDependency) -> User:
    """Пользователь с ролью администратора."""
    if not user.is_admin:
        raise AuthorizationError("Admin access required")
    return user


AdminUserDependency = Annotated[User, Depends(get_admin_user)]

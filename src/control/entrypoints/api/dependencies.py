"""Зависимости control API: аутентификация по API ключу."""

from typing import Annotated, Optional

from fastapi import Depends, Query

from users.domain.models import User
from users.entrypoints.api.dependencies import UserServiceDependency


async def get_api_user(
    service: UserServiceDependency,
    token: Annotated[Optional[str], Query()] = None,
) -> User:
    """Пользователь по API ключу из параметра token."""
    return await service.get_user_by_api_key(token)


ApiUserDependency = Annotated[User, Depends(get_api_user)]

"""API endpoints личного кабинета пользователя."""

from typing import Optional

from fastapi import APIRouter, Query

from base.config import get_settings
from base.data_structures import Page, TokenResponse
from billing.domain.models import Transaction, TransactionType
from billing.entrypoints.api.dependencies import LedgerServiceDependency
from number_requests.domain.models import NumberRequest, NumberRequestStatus
from number_requests.entrypoints.api.dependencies import NumberRequestServiceDependency
from users.domain.models import (
    PasswordChangeDTO,
    ProfileUpdateDTO,
    RefreshTokenDTO,
    UserCreateDTO,
    UserLoginDTO,
    UserPreferences,
    UserProfile,
)
from users.entrypoints.api.dependencies import (
    CurrentUserDependency,
    UserServiceDependency,
)

router = APIRouter()

settings = get_settings()


@router.post("/", status_code=201)
async def register_user(user: UserCreateDTO, service: UserServiceDependency):
    """Регистрация нового пользователя."""
    created = await service.register(user)
    return {
        "message": "User registered successfully",
        "user": UserProfile.from_user(created),
    }


@router.post("/auth/")
async def authenticate_user(user: UserLoginDTO, service: UserServiceDependency) -> TokenResponse:
    """Аутентификация пользователя."""
    return await service.authenticate(user)


@router.post("/refresh/")
async def refresh_token(data: RefreshTokenDTO, service: UserServiceDependency) -> TokenResponse:
    """Обновление пары токенов."""
    return await service.refresh(data.refresh_token)


@router.get("/profile/")
async def get_profile(user: CurrentUserDependency) -> UserProfile:
    """Профиль текущего пользователя."""
    return UserProfile.from_user(user)


@router.put("/profile/")
async def update_profile(
    data: ProfileUpdateDTO, user: CurrentUserDependency, service: UserServiceDependency
) -> UserProfile:
    """Изменение профиля."""
    return UserProfile.from_user(await service.update_profile(user.id, data))


@router.post("/change-password/")
async def change_password(
    data: PasswordChangeDTO, user: CurrentUserDependency, service: UserServiceDependency
):
    """Смена пароля."""
    await service.change_password(user.id, data)
    return {"message": "Password changed successfully"}


@router.get("/balance/")
async def get_balance(user: CurrentUserDependency, ledger: LedgerServiceDependency):
    """Баланс пользователя."""
    balance = await ledger.get_balance(user.id)
    return {"balance": f"{balance:.2f}", "currency": settings.default_currency}


@router.get("/transactions/")
async def get_transactions(
    user: CurrentUserDependency,
    ledger: LedgerServiceDependency,
    type: Optional[TransactionType] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> Page[Transaction]:
    """История операций по балансу."""
    return await ledger.list_transactions(user.id, type, page, limit)


@router.get("/numbers/")
async def get_numbers(
    user: CurrentUserDependency,
    service: NumberRequestServiceDependency,
    status: Optional[NumberRequestStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> Page[NumberRequest]:
    """Заявки на номера пользователя."""
    return await service.list_user_requests(user.id, status, page, limit)


@router.get("/numbers/active/")
async def get_active_numbers(
    user: CurrentUserDependency, service: NumberRequestServiceDependency
) -> list[NumberRequest]:
    """Активные заявки пользователя."""
    return await service.get_active_requests(user.id)


@router.get("/api-key/")
async def get_api_key(user: CurrentUserDependency):
    """API ключ для control API."""
    return {"api_key": user.api_key}


@router.post("/api-key/")
async def regenerate_api_key(user: CurrentUserDependency, service: UserServiceDependency):
    """Выпуск нового API ключа."""
    api_key = await service.regenerate_api_key(user.id)
    return {"api_key": api_key, "message": "API key regenerated successfully"}


@router.get("/preferences/")
async def get_preferences(user: CurrentUserDependency) -> UserPreferences:
    """Настройки пользователя."""
    return user.preferences


@router.put("/preferences/")
async def update_preferences(
    preferences: UserPreferences,
    user: CurrentUserDependency,
    service: UserServiceDependency,
) -> UserPreferences:
    """Изменение настроек."""
    return await service.update_preferences(user.id, preferences)

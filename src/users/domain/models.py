"""Модели пользователей маркетплейса номеров."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class UserRole(str, Enum):
    """Роли пользователей."""

    USER = "user"
    ADMIN = "admin"


class UserPreferences(BaseModel):
    """Настройки пользователя."""

    language: str = "en"
    email_notifications: bool = True
    sms_notifications: bool = False


class UserCredentials(BaseModel):
    """Модель учетных данных пользователя."""

    email: EmailStr
    password: str


class UserCreateDTO(UserCredentials):
    """Данные для регистрации."""

    username: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_min_length(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("password must be at least 8 characters long")
        return v


class UserLoginDTO(UserCredentials):
    """Данные для входа."""


class RefreshTokenDTO(BaseModel):
    """Запрос на обновление access токена."""

    refresh_token: str


class NewUser(BaseModel):
    """Пользователь, подготовленный к сохранению."""

    email: str
    username: str
    password_hash: str
    api_key: str
    role: UserRole = UserRole.USER


class User(BaseModel):
    """Модель пользователя."""

    id: int
    email: str
    username: str
    password_hash: str
    balance: Decimal = Decimal("0.00")
    api_key: str
    role: UserRole = UserRole.USER
    is_active: bool = True
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    created_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserProfile(BaseModel):
    """Публичный профиль пользователя (без секретов)."""

    id: int
    email: str
    username: str
    balance: Decimal
    role: UserRole
    is_active: bool
    preferences: UserPreferences
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(**user.model_dump(exclude={"password_hash", "api_key"}))


class ProfileUpdateDTO(BaseModel):
    """Изменение профиля."""

    username: Optional[str] = Field(default=None, min_length=2, max_length=255)


class PasswordChangeDTO(BaseModel):
    """Смена пароля."""

    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_min_length(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("password must be at least 8 characters long")
        return v

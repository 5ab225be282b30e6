"""Утилиты для работы с JWT токенами, паролями и API ключами."""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from base.config import get_settings
from base.data_structures import JWTPayloadDTO
from base.exceptions import AuthenticationError, InvalidTokenException

settings = get_settings()

PASSWORD_HASH_ITERATIONS = 100_000


class JWTHandler:
    """Класс для работы с JWT токенами."""

    def __init__(self, secret_key: str):
        """Инициализация обработчика JWT."""
        self.secret_key = secret_key

    def create_access_token(
        self, user_id: int, expires_delta: Optional[timedelta] = None
    ) -> str:
        """Создание JWT токена."""
        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(
                minutes=settings.access_token_expires_minutes
            )

        to_encode = {"id": user_id, "exp": int(expire.timestamp()), "type": "access"}
        try:
            return str(jwt.encode(to_encode, self.secret_key, algorithm="HS256"))
        except Exception as e:
            raise AuthenticationError(f"Failed to create token: {str(e)}")

    def decode_token(self, token: str) -> JWTPayloadDTO:
        """Декодирование JWT токена."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=["HS256"])
            return JWTPayloadDTO(**payload)
        except jwt.ExpiredSignatureError:
            raise InvalidTokenException("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenException(f"Invalid token: {str(e)}")
        except Exception as e:
            raise InvalidTokenException(f"Token decode error: {str(e)}")

    def create_refresh_token(self, user_id: int) -> str:
        """Создание refresh токена."""
        expire = datetime.now(timezone.utc) + timedelta(
            hours=settings.refresh_token_expires_hours
        )

        to_encode = {"id": user_id, "exp": int(expire.timestamp()), "type": "refresh"}
        try:
            return str(jwt.encode(to_encode, self.secret_key, algorithm="HS256"))
        except Exception as e:
            raise AuthenticationError(f"Failed to create refresh token: {str(e)}")

    def verify_refresh_token(self, token: str) -> int:
        """Проверка refresh токена."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            raise InvalidTokenException("Refresh token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenException(f"Invalid refresh token: {str(e)}")

        if payload.get("type") != "refresh":
            raise InvalidTokenException("Not a refresh token")
        user_id = payload.get("id")
        if user_id is None:
            raise InvalidTokenException("Token does not contain user ID")
        return int(user_id)


def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Хеширование пароля (pbkdf2-sha256 с солью)."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), PASSWORD_HASH_ITERATIONS
    ).hex()
    return f"{salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    """Проверка пароля по сохраненному хешу."""
    salt, _, expected = password_hash.partition("$")
    if not expected:
        return False
    return hmac.compare_digest(hash_password(password, salt), password_hash)


def generate_api_key() -> str:
    """Генерация нового API ключа пользователя."""
    return secrets.token_hex(32)


def generate_request_id() -> str:
    """Генерация непрозрачного идентификатора заявки на номер."""
    return secrets.token_hex(16)


def utc_now() -> datetime:
    """Текущее время в UTC."""
    return datetime.now(timezone.utc)

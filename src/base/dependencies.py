"""Зависимости для FastAPI приложения."""

import logging
import time
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from base.config import get_settings
from base.data_structures import JWTPayloadDTO
from base.exceptions import AuthenticationError
from base.orm import get_session_factory
from base.utils import JWTHandler

logger = logging.getLogger(__name__)

settings = get_settings()


class JWTBearerWithRateLimit(HTTPBearer):
    """Bearer авторизация с ограничением частоты запросов по IP."""

    def __init__(self, max_requests: int = 100, window_size: int = 60):
        """Инициализация."""
        super().__init__(auto_error=True)
        self.rate_limit: dict[str, list[float]] = {}  # IP -> [timestamp, ...]
        self.max_requests = max_requests
        self.window_size = window_size

    def _is_rate_limited(self, ip: str) -> bool:
        """Проверка rate limit в скользящем окне."""
        now = time.time()
        # Клиенты без запросов в текущем окне больше не отслеживаются
        stale = [
            key for key, stamps in self.rate_limit.items()
            if not stamps or now - stamps[-1] >= self.window_size
        ]
        for key in stale:
            del self.rate_limit[key]

        requests = [
            ts for ts in self.rate_limit.get(ip, []) if now - ts < self.window_size
        ]
        requests.append(now)
        self.rate_limit[ip] = requests
        return len(requests) > self.max_requests

    async def __call__(self, request: Request) -> HTTPAuthorizationCredentials:
        """Переопределение вызова для добавления проверок."""
        credentials = await super().__call__(request)

        ip = request.client.host if request.client else "unknown"
        if self._is_rate_limited(ip):
            logger.warning(f"Rate limit exceeded for IP: {ip}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests",
            )

        return credentials


security = JWTBearerWithRateLimit()


async def get_token_from_header(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> JWTPayloadDTO:
    """Получение и валидация access токена из заголовка."""
    payload = JWTHandler(settings.secret_key).decode_token(credentials.credentials)
    if payload.type != "access":
        logger.warning(f"Non-access token presented for user ID: {payload.id}")
        raise AuthenticationError("Invalid token type")
    return payload


async def get_db():
    """Получение сессии базы данных."""
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# Типы для внедрения зависимостей
DatabaseDependency = Annotated[AsyncSession, Depends(get_db)]
TokenDependency = Annotated[JWTPayloadDTO, Depends(get_token_from_header)]

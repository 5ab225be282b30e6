"""Структуры данных для приложения."""

from math import ceil
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class JWTPayloadDTO(BaseModel):
    """DTO для полезной нагрузки JWT токена."""

    id: int
    exp: Optional[int] = None  # Unix timestamp
    type: Optional[str] = None


class TokenResponse(BaseModel):
    """Ответ с токенами."""

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None


class Pagination(BaseModel):
    """Информация о постраничной выдаче."""

    current: int
    pages: int
    total: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(current=page, pages=ceil(total / limit) if limit else 0, total=total)


class Page(BaseModel, Generic[T]):
    """Страница результатов."""

    items: List[T]
    pagination: Pagination

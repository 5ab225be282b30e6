"""Кеш цен в Redis."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from base.config import get_settings
from catalog.domain.models import PriceEntry

logger = logging.getLogger(__name__)
settings = get_settings()


def price_cache_key(country_id: int, application_id: int) -> str:
    """Ключ кеша для пары страна/приложение."""
    return f"price:{country_id}:{application_id}"


class PriceCache(ABC):
    """Интерфейс кеша цен.

    В кеше хранится последняя версия записи, включая неактивные:
    фильтрация по is_active делается после чтения.
    """

    @abstractmethod
    async def get(self, country_id: int, application_id: int) -> Optional[PriceEntry]:
        """Чтение цены из кеша."""

    @abstractmethod
    async def fill(self, entry: PriceEntry) -> None:
        """Заполнение кеша после промаха (не перезаписывает существующий ключ)."""

    @abstractmethod
    async def put(self, entry: PriceEntry) -> None:
        """Запись новой версии цены после ее изменения."""


class NullPriceCache(PriceCache):
    """Кеш-заглушка, когда кеширование выключено."""

    async def get(self, country_id: int, application_id: int) -> Optional[PriceEntry]:
        return None

    async def fill(self, entry: PriceEntry) -> None:
        return None

    async def put(self, entry: PriceEntry) -> None:
        return None


class InMemoryPriceCache(PriceCache):
    """In-memory кеш для тестов."""

    def __init__(self) -> None:
        self.entries: dict[str, str] = {}

    async def get(self, country_id: int, application_id: int) -> Optional[PriceEntry]:
        raw = self.entries.get(price_cache_key(country_id, application_id))
        return PriceEntry.model_validate_json(raw) if raw else None

    async def fill(self, entry: PriceEntry) -> None:
        key = price_cache_key(entry.country_id, entry.application_id)
        self.entries.setdefault(key, entry.model_dump_json())

    async def put(self, entry: PriceEntry) -> None:
        key = price_cache_key(entry.country_id, entry.application_id)
        self.entries[key] = entry.model_dump_json()


class RedisPriceCache(PriceCache):
    """Кеш цен в Redis.

    Ошибки Redis при чтении и заполнении не ломают получение цены: запрос
    уходит в БД. Ошибка при записи новой версии пробрасывается, чтобы не
    оставить устаревшую цену.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.client = client or redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        self.ttl_seconds = ttl_seconds or settings.price_cache_ttl_seconds

    async def get(self, country_id: int, application_id: int) -> Optional[PriceEntry]:
        try:
            raw = await self.client.get(price_cache_key(country_id, application_id))
        except RedisError as e:
            logger.warning(f"Price cache read failed: {e}")
            return None
        return PriceEntry.model_validate_json(raw) if raw else None

    async def fill(self, entry: PriceEntry) -> None:
        try:
            await self.client.set(
                price_cache_key(entry.country_id, entry.application_id),
                entry.model_dump_json(),
                ex=self.ttl_seconds,
                nx=True,
            )
        except RedisError as e:
            logger.warning(f"Price cache fill failed: {e}")

    async def put(self, entry: PriceEntry) -> None:
        await self.client.set(
            price_cache_key(entry.country_id, entry.application_id),
            entry.model_dump_json(),
            ex=self.ttl_seconds,
        )


_price_cache: Optional[PriceCache] = None


def get_price_cache() -> PriceCache:
    """Получение кеша цен согласно настройкам."""
    global _price_cache
    if _price_cache is None:
        _price_cache = (
            RedisPriceCache() if settings.price_cache_enabled else NullPriceCache()
        )
    return _price_cache

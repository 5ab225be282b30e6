"""Сервисы каталога и ценообразования."""

import logging
from decimal import Decimal
from typing import Optional

from redis.exceptions import RedisError

from base.exceptions import (
    InternalError,
    InvalidParameterError,
    NotFoundError,
    ServiceUnavailableError,
)
from catalog.adapters.cache import NullPriceCache, PriceCache
from catalog.domain.models import (
    Application,
    ApplicationCategory,
    Country,
    PriceEntry,
    PriceUpsert,
    final_price,
)
from catalog.services.unit_of_work import CatalogAbstractUnitOfWork

logger = logging.getLogger(__name__)


class CatalogService:
    """Сервис для работы со странами, приложениями и ценами."""

    def __init__(
        self, uow: CatalogAbstractUnitOfWork, cache: Optional[PriceCache] = None
    ) -> None:
        """Инициализация сервиса."""
        self._uow = uow
        self._cache = cache or NullPriceCache()

    async def list_countries(self, active_only: bool = True) -> list[Country]:
        """Список стран."""
        async with self._uow as uow:
            return await uow.catalog.list_countries(active_only)

    async def list_applications(
        self,
        active_only: bool = True,
        category: Optional[ApplicationCategory] = None,
    ) -> list[Application]:
        """Список приложений."""
        async with self._uow as uow:
            return await uow.catalog.list_applications(active_only, category)

    async def save_country(self, country: Country) -> Country:
        """Создание или обновление страны."""
        async with self._uow as uow:
            saved = await uow.catalog.save_country(country)
            await uow.commit()
        logger.info(f"Country {country.id} ({country.code}) saved")
        return saved

    async def save_application(self, application: Application) -> Application:
        """Создание или обновление приложения."""
        async with self._uow as uow:
            saved = await uow.catalog.save_application(application)
            await uow.commit()
        logger.info(f"Application {application.id} ({application.code}) saved")
        return saved

    async def get_price(
        self, country_id: int, application_id: int
    ) -> Optional[PriceEntry]:
        """Активная цена для пары страна/приложение или None."""
        entry = await self._cache.get(country_id, application_id)
        if entry is None:
            async with self._uow as uow:
                entry = await uow.catalog.get_price(
                    country_id, application_id, active_only=False
                )
            if entry is None:
                return None
            await self._cache.fill(entry)
        return entry if entry.is_active else None

    async def upsert_price(
        self, data: PriceUpsert, updated_by: Optional[int] = None
    ) -> PriceEntry:
        """Создание или обновление цены.

        Новая версия записывается в кеш сразу после фиксации транзакции.
        """
        async with self._uow as uow:
            if await uow.catalog.get_country(data.country_id) is None:
                raise NotFoundError(f"Country {data.country_id} not found")
            if await uow.catalog.get_application(data.application_id) is None:
                raise NotFoundError(f"Application {data.application_id} not found")
            entry = await uow.catalog.upsert_price(data, updated_by)
            await uow.commit()

        try:
            await self._cache.put(entry)
        except RedisError as e:
            logger.error(
                f"Price {data.country_id}/{data.application_id} saved, cache refresh failed: {e}"
            )
            raise InternalError("Price saved but cache refresh failed") from e

        logger.info(
            f"Price {data.country_id}/{data.application_id} set to {entry.cost} by {updated_by}"
        )
        return entry

    async def quote(
        self, country_id: int, application_id: int, quantity: int = 1
    ) -> Decimal:
        """Стоимость номера с учетом скидок."""
        if quantity < 1:
            raise InvalidParameterError("quantity must be positive")
        entry = await self.get_price(country_id, application_id)
        if entry is None:
            raise ServiceUnavailableError("Service not available")
        return final_price(entry, quantity)

    async def list_prices(
        self, country_id: Optional[int] = None, active_only: bool = False
    ) -> list[PriceEntry]:
        """Список цен."""
        async with self._uow as uow:
            return await uow.catalog.list_prices(country_id, active_only)

    async def get_prices_map(self, country_id: int) -> dict[str, dict[str, dict]]:
        """Цены страны в формате {страна: {приложение: {cost, count}}}."""
        prices = await self.list_prices(country_id, active_only=True)
        result: dict[str, dict[str, dict]] = {}
        for price in prices:
            result.setdefault(str(price.country_id), {})[str(price.application_id)] = {
                "cost": str(price.cost),
                "count": price.count,
            }
        return result

    async def get_available_numbers(self, country_id: int, application_id: int) -> int:
        """Оценка количества доступных номеров."""
        entry = await self.get_price(country_id, application_id)
        return entry.count if entry else 0

    async def import_prices(
        self, rows: list[PriceUpsert], updated_by: Optional[int] = None
    ) -> tuple[list[PriceEntry], list[str]]:
        """Массовая загрузка цен; ошибки по строкам не прерывают загрузку."""
        saved: list[PriceEntry] = []
        errors: list[str] = []
        for index, row in enumerate(rows):
            try:
                saved.append(await self.upsert_price(row, updated_by))
            except NotFoundError as e:
                errors.append(f"Row {index + 2}: {e}")
            except InternalError:
                # Цена сохранена, но кеш мог остаться устаревшим
                errors.append(f"Row {index + 2}: saved, cache refresh failed")
        return saved, errors

    async def get_stats(self) -> dict[str, int]:
        """Статистика каталога."""
        async with self._uow as uow:
            return await uow.catalog.count_active()

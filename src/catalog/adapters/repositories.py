"""Репозитории для работы с каталогом."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from base.orm import as_utc
from base.unit_of_work import InMemoryStore
from base.utils import utc_now
from catalog.domain.models import (
    Application,
    ApplicationCategory,
    BulkDiscountTier,
    Country,
    PriceEntry,
    PriceUpsert,
)

from .orm import ApplicationORM, CountryORM, PriceBulkDiscountORM, PriceORM


class CatalogAbstractRepository(ABC):
    """Абстракция репозитория каталога."""

    @abstractmethod
    async def get_country(self, country_id: int) -> Optional[Country]:
        """Получение страны по ID."""

    @abstractmethod
    async def get_application(self, application_id: int) -> Optional[Application]:
        """Получение приложения по ID."""

    @abstractmethod
    async def list_countries(self, active_only: bool = True) -> list[Country]:
        """Список стран, отсортированный по приоритету и названию."""

    @abstractmethod
    async def list_applications(
        self,
        active_only: bool = True,
        category: Optional[ApplicationCategory] = None,
    ) -> list[Application]:
        """Список приложений, отсортированный по приоритету и имени."""

    @abstractmethod
    async def save_country(self, country: Country) -> Country:
        """Создание или обновление страны."""

    @abstractmethod
    async def save_application(self, application: Application) -> Application:
        """Создание или обновление приложения."""

    @abstractmethod
    async def get_price(
        self, country_id: int, application_id: int, active_only: bool = True
    ) -> Optional[PriceEntry]:
        """Получение цены для пары страна/приложение."""

    @abstractmethod
    async def upsert_price(
        self, data: PriceUpsert, updated_by: Optional[int]
    ) -> PriceEntry:
        """Создание или перезапись цены."""

    @abstractmethod
    async def list_prices(
        self, country_id: Optional[int] = None, active_only: bool = False
    ) -> list[PriceEntry]:
        """Список цен."""

    @abstractmethod
    async def count_active(self) -> dict[str, int]:
        """Количество активных стран, приложений и цен."""


def _country_from_orm(orm: CountryORM) -> Country:
    return Country(
        id=orm.id,
        title=orm.title,
        code=orm.code,
        phone_code=orm.phone_code,
        is_active=orm.is_active,
        priority=orm.priority,
        currency=orm.currency,
        timezone=orm.timezone,
        language=orm.language,
    )


def _application_from_orm(orm: ApplicationORM) -> Application:
    return Application(
        id=orm.id,
        name=orm.name,
        code=orm.code,
        category=orm.category,
        is_active=orm.is_active,
        priority=orm.priority,
        description=orm.description or "",
        website=orm.website,
        color=orm.color,
    )


def _price_from_orm(orm: PriceORM) -> PriceEntry:
    return PriceEntry(
        country_id=orm.country_id,
        application_id=orm.application_id,
        cost=Decimal(str(orm.cost)),
        currency=orm.currency,
        count=orm.count,
        discount=Decimal(str(orm.discount or 0)),
        bulk_discounts=[
            BulkDiscountTier(
                min_quantity=tier.min_quantity,
                max_quantity=tier.max_quantity,
                discount_percent=Decimal(str(tier.discount_percent)),
            )
            for tier in orm.bulk_discounts
        ],
        is_active=orm.is_active,
        updated_at=as_utc(orm.updated_at),
        updated_by=orm.updated_by,
    )


class CatalogSqlAlchemyRepository(CatalogAbstractRepository):
    """Репозиторий SQLAlchemy для каталога."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_country(self, country_id: int) -> Optional[Country]:
        """Получение страны по ID."""
        country_orm = await self.session.get(CountryORM, country_id)
        return _country_from_orm(country_orm) if country_orm else None

    async def get_application(self, application_id: int) -> Optional[Application]:
        """Получение приложения по ID."""
        application_orm = await self.session.get(ApplicationORM, application_id)
        return _application_from_orm(application_orm) if application_orm else None

    async def list_countries(self, active_only: bool = True) -> list[Country]:
        """Список стран."""
        stmt = select(CountryORM).order_by(CountryORM.priority.desc(), CountryORM.title)
        if active_only:
            stmt = stmt.where(CountryORM.is_active.is_(True))
        result = await self.session.execute(stmt)
        return [_country_from_orm(c) for c in result.scalars().all()]

    async def list_applications(
        self,
        active_only: bool = True,
        category: Optional[ApplicationCategory] = None,
    ) -> list[Application]:
        """Список приложений."""
        stmt = select(ApplicationORM).order_by(
            ApplicationORM.priority.desc(), ApplicationORM.name
        )
        if active_only:
            stmt = stmt.where(ApplicationORM.is_active.is_(True))
        if category is not None:
            stmt = stmt.where(ApplicationORM.category == category)
        result = await self.session.execute(stmt)
        return [_application_from_orm(a) for a in result.scalars().all()]

    async def save_country(self, country: Country) -> Country:
        """Создание или обновление страны."""
        await self.session.merge(CountryORM(**country.model_dump()))
        await self.session.flush()
        return country

    async def save_application(self, application: Application) -> Application:
        """Создание или обновление приложения."""
        await self.session.merge(ApplicationORM(**application.model_dump()))
        await self.session.flush()
        return application

    async def _select_price_for_update(
        self, country_id: int, application_id: int
    ) -> Optional[PriceORM]:
        stmt = (
            select(PriceORM)
            .filter_by(country_id=country_id, application_id=application_id)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_price(
        self, country_id: int, application_id: int, active_only: bool = True
    ) -> Optional[PriceEntry]:
        """Получение цены."""
        stmt = select(PriceORM).filter_by(
            country_id=country_id, application_id=application_id
        )
        if active_only:
            stmt = stmt.where(PriceORM.is_active.is_(True))
        result = await self.session.execute(stmt)
        price_orm = result.scalar_one_or_none()
        return _price_from_orm(price_orm) if price_orm else None

    async def upsert_price(
        self, data: PriceUpsert, updated_by: Optional[int]
    ) -> PriceEntry:
        """Создание или обновление цены.

        Скидки за объем и is_active меняются, только если переданы.
        Существующая строка блокируется (FOR UPDATE). Если строки нет, вставка
        идет в savepoint: при гонке с параллельной вставкой уникальный индекс
        отклоняет вторую, и она превращается в обновление.
        """
        price_orm = await self._select_price_for_update(
            data.country_id, data.application_id
        )
        if price_orm is None:
            try:
                async with self.session.begin_nested():
                    price_orm = PriceORM(
                        country_id=data.country_id,
                        application_id=data.application_id,
                        cost=data.cost,
                        bulk_discounts=[],
                    )
                    self.session.add(price_orm)
                    await self.session.flush()
            except IntegrityError:
                price_orm = await self._select_price_for_update(
                    data.country_id, data.application_id
                )
                if price_orm is None:
                    raise

        price_orm.cost = data.cost
        price_orm.currency = data.currency
        price_orm.count = data.count
        price_orm.discount = data.discount
        if data.is_active is not None:
            price_orm.is_active = data.is_active
        price_orm.updated_at = utc_now()
        price_orm.updated_by = updated_by
        if data.bulk_discounts is not None:
            price_orm.bulk_discounts = [
                PriceBulkDiscountORM(
                    position=position,
                    min_quantity=tier.min_quantity,
                    max_quantity=tier.max_quantity,
                    discount_percent=tier.discount_percent,
                )
                for position, tier in enumerate(data.bulk_discounts)
            ]
        await self.session.flush()
        return _price_from_orm(price_orm)

    async def list_prices(
        self, country_id: Optional[int] = None, active_only: bool = False
    ) -> list[PriceEntry]:
        """Список цен."""
        stmt = select(PriceORM).order_by(PriceORM.country_id, PriceORM.application_id)
        if country_id is not None:
            stmt = stmt.where(PriceORM.country_id == country_id)
        if active_only:
            stmt = stmt.where(PriceORM.is_active.is_(True))
        result = await self.session.execute(stmt)
        return [_price_from_orm(p) for p in result.scalars().all()]

    async def count_active(self) -> dict[str, int]:
        """Количество активных записей каталога."""
        counts = {}
        for key, model in (
            ("countries", CountryORM),
            ("applications", ApplicationORM),
            ("prices", PriceORM),
        ):
            result = await self.session.execute(
                select(func.count()).select_from(model).where(model.is_active.is_(True))
            )
            counts[key] = int(result.scalar_one())
        return counts


class CatalogInMemoryRepository(CatalogAbstractRepository):
    """In-memory репозиторий каталога для тестов."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    @property
    def _countries(self) -> dict[int, Country]:
        return self.store.table("countries")

    @property
    def _applications(self) -> dict[int, Application]:
        return self.store.table("applications")

    @property
    def _prices(self) -> dict[tuple[int, int], PriceEntry]:
        return self.store.table("prices")

    async def get_country(self, country_id: int) -> Optional[Country]:
        country = self._countries.get(country_id)
        return country.model_copy(deep=True) if country else None

    async def get_application(self, application_id: int) -> Optional[Application]:
        application = self._applications.get(application_id)
        return application.model_copy(deep=True) if application else None

    async def list_countries(self, active_only: bool = True) -> list[Country]:
        countries = [
            c for c in self._countries.values() if c.is_active or not active_only
        ]
        return sorted(countries, key=lambda c: (-c.priority, c.title))

    async def list_applications(
        self,
        active_only: bool = True,
        category: Optional[ApplicationCategory] = None,
    ) -> list[Application]:
        applications = [
            a
            for a in self._applications.values()
            if (a.is_active or not active_only)
            and (category is None or a.category == category)
        ]
        return sorted(applications, key=lambda a: (-a.priority, a.name))

    async def save_country(self, country: Country) -> Country:
        self._countries[country.id] = country.model_copy(deep=True)
        return country

    async def save_application(self, application: Application) -> Application:
        self._applications[application.id] = application.model_copy(deep=True)
        return application

    async def get_price(
        self, country_id: int, application_id: int, active_only: bool = True
    ) -> Optional[PriceEntry]:
        price = self._prices.get((country_id, application_id))
        if price is None or (active_only and not price.is_active):
            return None
        return price.model_copy(deep=True)

    async def upsert_price(
        self, data: PriceUpsert, updated_by: Optional[int]
    ) -> PriceEntry:
        current = self._prices.get((data.country_id, data.application_id))
        fields = data.model_dump(exclude_none=True)
        if current is not None:
            fields.setdefault("bulk_discounts", current.model_dump()["bulk_discounts"])
            fields.setdefault("is_active", current.is_active)
        price = PriceEntry(**fields, updated_at=utc_now(), updated_by=updated_by)
        self._prices[(data.country_id, data.application_id)] = price
        return price.model_copy(deep=True)

    async def list_prices(
        self, country_id: Optional[int] = None, active_only: bool = False
    ) -> list[PriceEntry]:
        prices = [
            p
            for key, p in sorted(self._prices.items())
            if (country_id is None or p.country_id == country_id)
            and (p.is_active or not active_only)
        ]
        return [p.model_copy(deep=True) for p in prices]

    async def count_active(self) -> dict[str, int]:
        return {
            "countries": sum(1 for c in self._countries.values() if c.is_active),
            "applications": sum(1 for a in self._applications.values() if a.is_active),
            "prices": sum(1 for p in self._prices.values() if p.is_active),
        }

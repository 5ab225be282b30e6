"""Публичные API endpoints каталога."""

from typing import Optional

from fastapi import APIRouter, Query

from catalog.domain.models import Application, ApplicationCategory, Country, PriceEntry
from catalog.entrypoints.api.dependencies import CatalogServiceDependency

router = APIRouter()


@router.get("/countries/")
async def list_countries(service: CatalogServiceDependency) -> list[Country]:
    """Активные страны."""
    return await service.list_countries()


@router.get("/applications/")
async def list_applications(
    service: CatalogServiceDependency, category: Optional[ApplicationCategory] = None
) -> list[Application]:
    """Активные приложения."""
    return await service.list_applications(category=category)


@router.get("/prices/")
async def list_prices(service: CatalogServiceDependency, country_id: int) -> list[PriceEntry]:
    """Активные цены страны."""
    return await service.list_prices(country_id, active_only=True)


@router.get("/quote/")
async def quote(
    service: CatalogServiceDependency,
    country_id: int,
    application_id: int,
    quantity: int = Query(1, ge=1),
):
    """Стоимость номера с учетом скидок."""
    cost = await service.quote(country_id, application_id, quantity)
    return {
        "country_id": country_id,
        "application_id": application_id,
        "quantity": quantity,
        "cost": str(cost),
    }

"""Зависимости для API каталога."""

from typing import Annotated

from fastapi import Depends

from base.dependencies import get_db
from catalog.adapters.cache import get_price_cache
from catalog.services.services import CatalogService
from catalog.services.unit_of_work import PostgreSQLCatalogUnitOfWork


async def get_catalog_service(db=Depends(get_db)) -> CatalogService:
    """Получение сервиса каталога."""
    return CatalogService(PostgreSQLCatalogUnitOfWork(lambda: db), get_price_cache())


CatalogServiceDependency = Annotated[CatalogService, Depends(get_catalog_service)]

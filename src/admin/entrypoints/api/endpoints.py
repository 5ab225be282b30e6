"""API endpoints администратора."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, UploadFile
from fastapi.responses import Response

from base.data_structures import Page
from base.exceptions import InvalidParameterError
from billing.domain.models import BalanceAdjustmentDTO
from billing.entrypoints.api.dependencies import LedgerServiceDependency
from catalog.domain.models import Application, Country, PriceEntry, PriceUpsert
from catalog.entrypoints.api.dependencies import CatalogServiceDependency
from catalog.services.excel import build_price_template, read_price_rows
from number_requests.domain.models import NumberRequest, NumberRequestStatus
from number_requests.entrypoints.api.dependencies import NumberRequestServiceDependency
from users.domain.models import UserProfile
from users.entrypoints.api.dependencies import AdminUserDependency, UserServiceDependency

logger = logging.getLogger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/dashboard/")
async def get_dashboard(
    users: UserServiceDependency,
    ledger: LedgerServiceDependency,
    catalog: CatalogServiceDependency,
    requests: NumberRequestServiceDependency,
):
    """Сводная статистика сервиса."""
    total_users, active_users = await users.count_users()
    by_status = await requests.get_stats()
    revenue = await ledger.get_revenue()
    return {
        "stats": {
            "total_users": total_users,
            "active_users": active_users,
            "total_requests": sum(by_status.values()),
            "active_requests": by_status["ready"] + by_status["close"],
            "requests_by_status": by_status,
            "total_revenue": str(revenue),
            "catalog": await catalog.get_stats(),
        }
    }


@router.get("/users/")
async def list_users(
    service: UserServiceDependency,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
) -> Page[UserProfile]:
    """Список пользователей."""
    return await service.list_users(page, limit, search)


@router.get("/users/{user_id}/")
async def get_user(user_id: int, service: UserServiceDependency) -> UserProfile:
    """Профиль пользователя."""
    return UserProfile.from_user(await service.get_user(user_id))


@router.post("/users/{user_id}/toggle-status/")
async def toggle_user_status(
    user_id: int, admin: AdminUserDependency, service: UserServiceDependency
):
    """Блокировка или разблокировка пользователя."""
    if user_id == admin.id:
        raise InvalidParameterError("Cannot change own status")
    user = await service.toggle_status(user_id)
    return {"user_id": user.id, "is_active": user.is_active}


@router.post("/users/{user_id}/balance/")
async def adjust_balance(
    user_id: int,
    data: BalanceAdjustmentDTO,
    admin: AdminUserDependency,
    ledger: LedgerServiceDependency,
):
    """Ручная корректировка баланса."""
    balance = await ledger.adjust_balance(user_id, data.amount, data.reason, admin.id)
    return {"user_id": user_id, "balance": f"{balance:.2f}"}


@router.get("/countries/")
async def list_countries(service: CatalogServiceDependency) -> list[Country]:
    """Все страны, включая неактивные."""
    return await service.list_countries(active_only=False)


@router.post("/countries/", status_code=201)
async def save_country(country: Country, service: CatalogServiceDependency) -> Country:
    """Создание или изменение страны."""
    return await service.save_country(country)


@router.get("/applications/")
async def list_applications(service: CatalogServiceDependency) -> list[Application]:
    """Все приложения, включая неактивные."""
    return await service.list_applications(active_only=False)


@router.post("/applications/", status_code=201)
async def save_application(
    application: Application, service: CatalogServiceDependency
) -> Application:
    """Создание или изменение приложения."""
    return await service.save_application(application)


@router.get("/prices/")
async def list_prices(
    service: CatalogServiceDependency, country_id: Optional[int] = None
) -> list[PriceEntry]:
    """Все цены."""
    return await service.list_prices(country_id)


@router.post("/prices/")
async def upsert_price(
    data: PriceUpsert, admin: AdminUserDependency, service: CatalogServiceDependency
) -> PriceEntry:
    """Создание или перезапись цены."""
    return await service.upsert_price(data, admin.id)


@router.post("/prices/import/", status_code=201)
async def import_prices(
    file: UploadFile, admin: AdminUserDependency, service: CatalogServiceDependency
):
    """Загрузка цен из Excel файла."""
    if not file.filename or not file.filename.endswith((".xlsx", ".xls")):
        raise InvalidParameterError("File must be Excel format (.xlsx or .xls)")

    rows, errors = read_price_rows(await file.read())
    saved, save_errors = await service.import_prices(rows, admin.id)
    errors.extend(save_errors)
    logger.info(f"Admin {admin.id} imported {len(saved)} prices, {len(errors)} errors")
    return {
        "message": f"Successfully imported {len(saved)} prices",
        "imported_count": len(saved),
        "errors": errors,
    }


@router.get("/prices/template/")
async def get_prices_template():
    """Шаблон Excel файла для загрузки цен."""
    return Response(
        content=build_price_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=prices_template.xlsx"},
    )


@router.get("/requests/")
async def list_requests(
    service: NumberRequestServiceDependency,
    status: Optional[NumberRequestStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> Page[NumberRequest]:
    """Все заявки на номера."""
    return await service.list_requests(status, page, limit)


@router.post("/requests/sweep/")
async def sweep_expired(admin: AdminUserDependency, service: NumberRequestServiceDependency):
    """Немедленная очистка просроченных заявок."""
    expired = await service.sweep_expired()
    logger.info(f"Admin {admin.id} ran expiry sweep: {expired} expired")
    return {"expired": expired}

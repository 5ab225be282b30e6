"""Control API: операции с номерами по API ключу."""

from typing import Optional

from fastapi import APIRouter, Request

from base.exceptions import InvalidParameterError
from catalog.entrypoints.api.dependencies import CatalogServiceDependency
from control.entrypoints.api.dependencies import ApiUserDependency
from number_requests.domain.models import RequestMetadata
from number_requests.entrypoints.api.dependencies import NumberRequestServiceDependency

router = APIRouter()


def _require(**params) -> None:
    missing = [name for name, value in params.items() if value in (None, "")]
    if missing:
        verb = "is" if len(missing) == 1 else "are"
        raise InvalidParameterError(f"{' and '.join(missing)} {verb} required")


@router.get("/get-balance")
async def get_balance(user: ApiUserDependency):
    """Баланс владельца ключа."""
    return {"balance": f"{user.balance:.2f}"}


@router.get("/limits")
async def get_limits(
    user: ApiUserDependency,
    service: CatalogServiceDependency,
    country_id: Optional[int] = None,
    application_id: Optional[int] = None,
):
    """Количество доступных номеров для пары страна/приложение."""
    _require(country_id=country_id, application_id=application_id)
    numbers = await service.get_available_numbers(country_id, application_id)
    return [
        {"application_id": application_id, "country_id": country_id, "numbers": numbers}
    ]


@router.get("/get-number")
async def get_number(
    request: Request,
    user: ApiUserDependency,
    service: NumberRequestServiceDependency,
    country_id: Optional[int] = None,
    application_id: Optional[int] = None,
):
    """Заказ номера со списанием стоимости с баланса."""
    _require(country_id=country_id, application_id=application_id)
    number_request = await service.create_request(
        user.id,
        country_id,
        application_id,
        RequestMetadata(
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        ),
    )
    return {
        "request_id": number_request.request_id,
        "country_id": number_request.country_id,
        "application_id": number_request.application_id,
        "number": number_request.phone_number,
    }


@router.get("/get-sms")
async def get_sms(
    user: ApiUserDependency,
    service: NumberRequestServiceDependency,
    request_id: Optional[str] = None,
):
    """Код из SMS по заявке (null, пока SMS не пришло)."""
    _require(request_id=request_id)
    number_request = await service.poll_sms(request_id, user.id)
    return {
        "request_id": number_request.request_id,
        "country_id": number_request.country_id,
        "application_id": number_request.application_id,
        "number": number_request.phone_number,
        "sms_code": number_request.sms_code,
    }


@router.post("/set-status")
async def set_status(
    user: ApiUserDependency,
    service: NumberRequestServiceDependency,
    request_id: Optional[str] = None,
    status: Optional[str] = None,
):
    """Смена статуса заявки."""
    _require(request_id=request_id, status=status)
    number_request = await service.set_status(request_id, user.id, status)
    return {"request_id": number_request.request_id, "success": True}


@router.get("/get-prices")
async def get_prices(
    user: ApiUserDependency,
    service: CatalogServiceDependency,
    country_id: Optional[int] = None,
):
    """Цены страны в формате {страна: {приложение: {cost, count}}}."""
    _require(country_id=country_id)
    return await service.get_prices_map(country_id)


@router.get("/countries")
async def get_countries(user: ApiUserDependency, service: CatalogServiceDependency):
    """Активные страны."""
    return [{"id": c.id, "title": c.title} for c in await service.list_countries()]


@router.get("/applications")
async def get_applications(user: ApiUserDependency, service: CatalogServiceDependency):
    """Активные приложения."""
    return [
        {"id": a.id, "name": a.name, "code": a.code}
        for a in await service.list_applications()
    ]

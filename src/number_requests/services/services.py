"""Жизненный цикл заявок на номера."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from base.config import get_number_request_ttl_minutes
from base.data_structures import Page, Pagination
from base.exceptions import (
    AlreadyExpiredError,
    InsufficientBalanceError,
    InvalidParameterError,
    InvalidTransitionError,
    NotFoundError,
    ServiceUnavailableError,
    UpstreamServiceError,
)
from base.utils import generate_request_id, utc_now
from billing.domain.models import DebitMeta
from billing.services.services import apply_debit
from catalog.domain.models import final_price
from number_requests.domain.models import (
    ACTIVE_STATUSES,
    CLIENT_STATUSES,
    NewNumberRequest,
    NumberRequest,
    NumberRequestStatus,
    RequestMetadata,
    can_transition,
    extract_sms_code,
)

from .providers import AcquiredNumber, NumberProvider, get_number_provider
from .unit_of_work import NumberRequestAbstractUnitOfWork

logger = logging.getLogger(__name__)


class NumberRequestService:
    """Сервис заявок: выдача номера, доставка SMS, смена статусов, истечение срока.

    Списание и создание заявки выполняются в одной транзакции. Переходы
    статусов идут под блокировкой строки, а срок проверяется как
    now >= expires_at, поэтому в момент истечения побеждает истечение.
    """

    def __init__(
        self,
        uow: NumberRequestAbstractUnitOfWork,
        provider: Optional[NumberProvider] = None,
        clock: Callable[[], datetime] = utc_now,
        ttl_minutes: Optional[int] = None,
    ) -> None:
        self.uow = uow
        self.provider = provider or get_number_provider()
        self.clock = clock
        self.ttl = timedelta(
            minutes=ttl_minutes if ttl_minutes is not None else get_number_request_ttl_minutes()
        )

    async def create_request(
        self,
        user_id: int,
        country_id: int,
        application_id: int,
        metadata: Optional[RequestMetadata] = None,
    ) -> NumberRequest:
        """Выдача номера со списанием стоимости."""
        async with self.uow:
            country = await self.uow.catalog.get_country(country_id)
            application = await self.uow.catalog.get_application(application_id)
            if (
                country is None
                or application is None
                or country.is_active is not True
                or application.is_active is not True
            ):
                raise ServiceUnavailableError("Service not available")

            price = await self.uow.catalog.get_price(country_id, application_id)
            if price is None:
                raise ServiceUnavailableError("Service not available")
            cost = final_price(price, 1)

            balance = await self.uow.ledger.get_balance(user_id)
            if balance is None:
                raise NotFoundError(f"User {user_id} not found")
            if balance < cost:
                raise InsufficientBalanceError("Insufficient balance")

        acquired = await self.provider.acquire_number(country, application)
        request_id = generate_request_id()
        metadata = (metadata or RequestMetadata()).model_copy(
            update={
                "country": country.title,
                "application": application.name,
                "service": application.code,
            }
        )

        try:
            async with self.uow:
                if cost > 0:
                    await apply_debit(
                        self.uow.ledger,
                        user_id,
                        cost,
                        DebitMeta(
                            currency=price.currency,
                            request_id=request_id,
                            description=f"Number for {application.name} ({country.title})",
                        ),
                    )
                request = await self.uow.requests.add(
                    NewNumberRequest(
                        request_id=request_id,
                        user_id=user_id,
                        country_id=country_id,
                        application_id=application_id,
                        phone_number=acquired.phone_number,
                        cost=cost,
                        currency=price.currency,
                        expires_at=self.clock() + self.ttl,
                        provider_request_id=acquired.provider_request_id,
                        metadata=metadata,
                    )
                )
                await self.uow.commit()
        except Exception:
            await self._release_quietly(acquired, NumberRequestStatus.REJECT)
            raise

        logger.info(
            f"User {user_id} got number request {request_id} "
            f"(country {country_id}, application {application_id}, cost {cost})"
        )
        return request

    async def _release_quietly(self, acquired: AcquiredNumber, status: NumberRequestStatus) -> None:
        if not acquired.provider_request_id:
            return
        try:
            await self.provider.release(acquired.provider_request_id, status)
        except UpstreamServiceError as e:
            logger.warning(f"Failed to release number {acquired.provider_request_id}: {e}")

    async def deliver_sms(self, request_id: str, message: str) -> NumberRequest:
        """Прием SMS по заявке."""
        now = self.clock()
        async with self.uow:
            request = await self.uow.requests.get(request_id, for_update=True)
            if request is None:
                raise NotFoundError("Request not found")

            if request.status == NumberRequestStatus.EXPIRED or request.is_expired(now):
                if request.status in ACTIVE_STATUSES:
                    await self.uow.requests.update_status(request_id, NumberRequestStatus.EXPIRED)
                    await self.uow.commit()
                raise AlreadyExpiredError("Request expired")

            if request.status not in ACTIVE_STATUSES:
                raise InvalidTransitionError(
                    f"Cannot deliver SMS to request in status {request.status.value}"
                )

            request = await self.uow.requests.add_sms(
                request_id,
                message,
                extract_sms_code(message),
                now,
                NumberRequestStatus.CLOSE,
            )
            await self.uow.commit()

        logger.info(f"SMS delivered for request {request_id}")
        return request

    async def get_request(self, request_id: str, user_id: int) -> NumberRequest:
        """Заявка владельца; просроченная фиксируется и отклоняется."""
        now = self.clock()
        async with self.uow:
            request = await self.uow.requests.get(request_id, for_update=True)
            if request is None or request.user_id != user_id:
                raise NotFoundError("Request not found")
            if request.status == NumberRequestStatus.EXPIRED:
                raise AlreadyExpiredError("Request expired")
            if request.status in ACTIVE_STATUSES and request.is_expired(now):
                await self.uow.requests.update_status(request_id, NumberRequestStatus.EXPIRED)
                await self.uow.commit()
                raise AlreadyExpiredError("Request expired")
        return request

    async def poll_sms(self, request_id: str, user_id: int) -> NumberRequest:
        """Проверка SMS; при необходимости опрашивает провайдера."""
        request = await self.get_request(request_id, user_id)
        if (
            request.sms_code is None
            and request.status in ACTIVE_STATUSES
            and request.provider_request_id
            and self.provider.supports_polling
        ):
            message = await self.provider.fetch_sms(request.provider_request_id)
            if message:
                request = await self.deliver_sms(request_id, message)
        return request

    async def set_status(self, request_id: str, user_id: int, new_status: str) -> NumberRequest:
        """Смена статуса заявки клиентом."""
        try:
            status = NumberRequestStatus(new_status)
        except ValueError:
            status = None
        if status not in CLIENT_STATUSES:
            allowed = ", ".join(sorted(s.value for s in CLIENT_STATUSES))
            raise InvalidParameterError(f"Invalid status. Must be one of: {allowed}")

        now = self.clock()
        async with self.uow:
            request = await self.uow.requests.get(request_id, for_update=True)
            if request is None or request.user_id != user_id:
                raise NotFoundError("Request not found")

            if request.status in ACTIVE_STATUSES and request.is_expired(now):
                await self.uow.requests.update_status(request_id, NumberRequestStatus.EXPIRED)
                await self.uow.commit()
                raise InvalidTransitionError("Request expired")

            if not can_transition(request.status, status):
                raise InvalidTransitionError(
                    f"Cannot change status from {request.status.value} to {status.value}"
                )
            if status == request.status:
                return request

            request = await self.uow.requests.update_status(
                request_id,
                status,
                completed_at=now if status == NumberRequestStatus.USED else None,
            )
            await self.uow.commit()

        logger.info(f"Request {request_id} moved to {status.value}")
        if status in (NumberRequestStatus.REJECT, NumberRequestStatus.USED):
            await self._release_quietly(
                AcquiredNumber(
                    phone_number=request.phone_number,
                    provider_request_id=request.provider_request_id,
                ),
                status,
            )
        return request

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Перевод всех просроченных активных заявок в expired."""
        async with self.uow:
            expired = await self.uow.requests.expire_stale(now or self.clock())
            await self.uow.commit()
        if expired:
            logger.info(f"Expired {expired} number requests")
        return expired

    async def list_user_requests(
        self,
        user_id: int,
        status: Optional[NumberRequestStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[NumberRequest]:
        """Заявки пользователя."""
        async with self.uow:
            items, total = await self.uow.requests.list_requests(user_id, status, page, limit)
        return Page[NumberRequest](items=items, pagination=Pagination.build(page, limit, total))

    async def list_requests(
        self,
        status: Optional[NumberRequestStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[NumberRequest]:
        """Все заявки (для администратора)."""
        async with self.uow:
            items, total = await self.uow.requests.list_requests(None, status, page, limit)
        return Page[NumberRequest](items=items, pagination=Pagination.build(page, limit, total))

    async def get_active_requests(self, user_id: int) -> list[NumberRequest]:
        async with self.uow:
            return await self.uow.requests.list_active(user_id, self.clock())

    async def get_stats(self) -> dict[str, int]:
        async with self.uow:
            return await self.uow.requests.count_by_status()

"""Репозитории заявок на номера."""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from base.exceptions import NotFoundError
from base.orm import as_utc
from base.unit_of_work import InMemoryStore
from base.utils import utc_now
from number_requests.adapters.orm import NumberRequestORM, SmsHistoryORM
from number_requests.domain.models import (
    ACTIVE_STATUSES,
    NewNumberRequest,
    NumberRequest,
    NumberRequestStatus,
    RequestMetadata,
    SmsEntry,
)


class NumberRequestAbstractRepository(ABC):
    """Интерфейс хранилища заявок."""

    @abstractmethod
    async def add(self, request: NewNumberRequest) -> NumberRequest:
        """Сохранение новой заявки."""
        raise NotImplementedError

    @abstractmethod
    async def get(self, request_id: str, for_update: bool = False) -> Optional[NumberRequest]:
        """Заявка по идентификатору; for_update блокирует строку до конца транзакции."""
        raise NotImplementedError

    @abstractmethod
    async def update_status(
        self,
        request_id: str,
        status: NumberRequestStatus,
        completed_at: Optional[datetime] = None,
    ) -> NumberRequest:
        raise NotImplementedError

    @abstractmethod
    async def add_sms(
        self,
        request_id: str,
        message: str,
        sms_code: str,
        received_at: datetime,
        status: NumberRequestStatus,
    ) -> NumberRequest:
        """Добавление SMS в историю и обновление кода."""
        raise NotImplementedError

    @abstractmethod
    async def expire_stale(self, now: datetime) -> int:
        """Перевод активных заявок с истекшим сроком в expired."""
        raise NotImplementedError

    @abstractmethod
    async def list_requests(
        self,
        user_id: Optional[int],
        status: Optional[NumberRequestStatus],
        page: int,
        limit: int,
    ) -> tuple[list[NumberRequest], int]:
        raise NotImplementedError

    @abstractmethod
    async def list_active(self, user_id: int, now: datetime) -> list[NumberRequest]:
        raise NotImplementedError

    @abstractmethod
    async def count_by_status(self) -> dict[str, int]:
        raise NotImplementedError


def _request_from_orm(orm: NumberRequestORM) -> NumberRequest:
    return NumberRequest(
        id=orm.id,
        request_id=orm.request_id,
        user_id=orm.user_id,
        country_id=orm.country_id,
        application_id=orm.application_id,
        phone_number=orm.phone_number,
        status=orm.status,
        cost=Decimal(str(orm.cost)),
        currency=orm.currency,
        expires_at=as_utc(orm.expires_at),
        provider_request_id=orm.provider_request_id,
        metadata=RequestMetadata(**(orm.request_metadata or {})),
        sms_code=orm.sms_code,
        received_at=as_utc(orm.received_at) if orm.received_at else None,
        completed_at=as_utc(orm.completed_at) if orm.completed_at else None,
        created_at=as_utc(orm.created_at),
        updated_at=as_utc(orm.updated_at),
        sms_history=[
            SmsEntry(message=sms.message, received_at=as_utc(sms.received_at))
            for sms in orm.sms_history
        ],
    )


class NumberRequestSqlAlchemyRepository(NumberRequestAbstractRepository):
    """Репозиторий SQLAlchemy для заявок."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_orm(self, request_id: str, for_update: bool = False) -> Optional[NumberRequestORM]:
        stmt = select(NumberRequestORM).filter_by(request_id=request_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_locked(self, request_id: str) -> NumberRequestORM:
        request_orm = await self._get_orm(request_id, for_update=True)
        if request_orm is None:
            raise NotFoundError(f"Request {request_id} not found")
        return request_orm

    async def add(self, request: NewNumberRequest) -> NumberRequest:
        """Сохранение новой заявки."""
        now = utc_now()
        request_orm = NumberRequestORM(
            request_id=request.request_id,
            user_id=request.user_id,
            country_id=request.country_id,
            application_id=request.application_id,
            phone_number=request.phone_number,
            status=request.status,
            cost=request.cost,
            currency=request.currency,
            expires_at=request.expires_at,
            provider_request_id=request.provider_request_id,
            request_metadata=request.metadata.model_dump(),
            created_at=now,
            updated_at=now,
            sms_history=[],
        )
        self.session.add(request_orm)
        await self.session.flush()
        return _request_from_orm(request_orm)

    async def get(self, request_id: str, for_update: bool = False) -> Optional[NumberRequest]:
        """Заявка по идентификатору."""
        request_orm = await self._get_orm(request_id, for_update)
        return _request_from_orm(request_orm) if request_orm else None

    async def update_status(
        self,
        request_id: str,
        status: NumberRequestStatus,
        completed_at: Optional[datetime] = None,
    ) -> NumberRequest:
        """Смена статуса заблокированной заявки."""
        request_orm = await self._get_locked(request_id)
        request_orm.status = status
        if completed_at is not None:
            request_orm.completed_at = completed_at
        request_orm.updated_at = utc_now()
        await self.session.flush()
        return _request_from_orm(request_orm)

    async def add_sms(
        self,
        request_id: str,
        message: str,
        sms_code: str,
        received_at: datetime,
        status: NumberRequestStatus,
    ) -> NumberRequest:
        """Добавление SMS в историю заблокированной заявки."""
        request_orm = await self._get_locked(request_id)
        request_orm.sms_history.append(
            SmsHistoryORM(message=message, received_at=received_at)
        )
        request_orm.sms_code = sms_code
        request_orm.received_at = received_at
        request_orm.status = status
        request_orm.updated_at = utc_now()
        await self.session.flush()
        return _request_from_orm(request_orm)

    async def expire_stale(self, now: datetime) -> int:
        """Один UPDATE по всем активным заявкам с истекшим сроком."""
        result = await self.session.execute(
            update(NumberRequestORM)
            .where(
                NumberRequestORM.status.in_(ACTIVE_STATUSES),
                NumberRequestORM.expires_at <= now,
            )
            .values(status=NumberRequestStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    async def list_requests(
        self,
        user_id: Optional[int],
        status: Optional[NumberRequestStatus],
        page: int,
        limit: int,
    ) -> tuple[list[NumberRequest], int]:
        """Постраничный список заявок."""
        stmt = select(NumberRequestORM)
        if user_id is not None:
            stmt = stmt.where(NumberRequestORM.user_id == user_id)
        if status is not None:
            stmt = stmt.where(NumberRequestORM.status == status)
        total = await self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        )
        result = await self.session.execute(
            stmt.order_by(NumberRequestORM.id.desc()).offset((page - 1) * limit).limit(limit)
        )
        return (
            [_request_from_orm(r) for r in result.scalars().all()],
            int(total.scalar_one()),
        )

    async def list_active(self, user_id: int, now: datetime) -> list[NumberRequest]:
        """Активные и не истекшие заявки пользователя."""
        result = await self.session.execute(
            select(NumberRequestORM)
            .where(
                NumberRequestORM.user_id == user_id,
                NumberRequestORM.status.in_(ACTIVE_STATUSES),
                NumberRequestORM.expires_at > now,
            )
            .order_by(NumberRequestORM.id.desc())
        )
        return [_request_from_orm(r) for r in result.scalars().all()]

    async def count_by_status(self) -> dict[str, int]:
        result = await self.session.execute(
            select(NumberRequestORM.status, func.count()).group_by(NumberRequestORM.status)
        )
        counts = {status.value: 0 for status in NumberRequestStatus}
        for status, count in result.all():
            counts[NumberRequestStatus(status).value] = int(count)
        return counts


class NumberRequestInMemoryRepository(NumberRequestAbstractRepository):
    """In-memory репозиторий заявок для тестов."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    @property
    def _requests(self) -> dict[str, NumberRequest]:
        return self.store.table("number_requests")

    def _replace(self, request_id: str, **fields) -> NumberRequest:
        request = self._requests[request_id].model_copy(
            update={**fields, "updated_at": utc_now()}, deep=True
        )
        self._requests[request_id] = request
        return request.model_copy(deep=True)

    async def add(self, request: NewNumberRequest) -> NumberRequest:
        now = utc_now()
        record = NumberRequest(
            id=self.store.next_id("number_requests"),
            created_at=now,
            updated_at=now,
            **request.model_dump(),
        )
        self._requests[record.request_id] = record
        return record.model_copy(deep=True)

    async def get(self, request_id: str, for_update: bool = False) -> Optional[NumberRequest]:
        request = self._requests.get(request_id)
        return request.model_copy(deep=True) if request else None

    async def update_status(
        self,
        request_id: str,
        status: NumberRequestStatus,
        completed_at: Optional[datetime] = None,
    ) -> NumberRequest:
        fields = {"status": status}
        if completed_at is not None:
            fields["completed_at"] = completed_at
        return self._replace(request_id, **fields)

    async def add_sms(
        self,
        request_id: str,
        message: str,
        sms_code: str,
        received_at: datetime,
        status: NumberRequestStatus,
    ) -> NumberRequest:
        history = self._requests[request_id].sms_history + [
            SmsEntry(message=message, received_at=received_at)
        ]
        return self._replace(
            request_id,
            sms_history=history,
            sms_code=sms_code,
            received_at=received_at,
            status=status,
        )

    async def expire_stale(self, now: datetime) -> int:
        stale = [
            r.request_id
            for r in self._requests.values()
            if r.status in ACTIVE_STATUSES and r.expires_at <= now
        ]
        for request_id in stale:
            self._replace(request_id, status=NumberRequestStatus.EXPIRED)
        return len(stale)

    async def list_requests(
        self,
        user_id: Optional[int],
        status: Optional[NumberRequestStatus],
        page: int,
        limit: int,
    ) -> tuple[list[NumberRequest], int]:
        items = [
            r
            for r in sorted(self._requests.values(), key=lambda r: r.id, reverse=True)
            if (user_id is None or r.user_id == user_id)
            and (status is None or r.status == status)
        ]
        start = (page - 1) * limit
        return [r.model_copy(deep=True) for r in items[start:start + limit]], len(items)

    async def list_active(self, user_id: int, now: datetime) -> list[NumberRequest]:
        return [
            r.model_copy(deep=True)
            for r in sorted(self._requests.values(), key=lambda r: r.id, reverse=True)
            if r.user_id == user_id and r.status in ACTIVE_STATUSES and r.expires_at > now
        ]

    async def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in NumberRequestStatus}
        for request in self._requests.values():
            counts[request.status.value] += 1
        return counts

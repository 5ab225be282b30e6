"""Тесты жизненного цикла заявок на номера."""

import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest

from base.exceptions import (
    AlreadyExpiredError,
    InsufficientBalanceError,
    InvalidParameterError,
    InvalidTransitionError,
    NotFoundError,
    ServiceUnavailableError,
    UpstreamServiceError,
)
from billing.domain.models import TransactionType
from catalog.domain.models import BulkDiscountTier
from conftest import add_catalog, add_user
from number_requests.domain.models import NumberRequestStatus, RequestMetadata
from number_requests.services.providers import (
    AcquiredNumber,
    LocalNumberProvider,
    SmsManProvider,
)
from number_requests.services.services import NumberRequestService
from number_requests.services.unit_of_work import InMemoryNumberRequestUnitOfWork


def request_service(store, clock, provider=None) -> NumberRequestService:
    return NumberRequestService(
        InMemoryNumberRequestUnitOfWork(store),
        provider=provider or LocalNumberProvider(),
        clock=clock,
        ttl_minutes=20,
    )


def transactions(store):
    return list(store.table("transactions").values())


class TestCreateRequest:
    """Тесты выдачи номера."""

    @pytest.mark.asyncio
    async def test_debits_and_records_purchase(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store, cost="0.30")

        request = await request_service(store, clock).create_request(
            user.id, 1, 1, RequestMetadata(ip_address="10.0.0.1")
        )

        assert request.status == NumberRequestStatus.READY
        assert request.phone_number.startswith("+7")
        assert len(request.phone_number) == len("+7") + 10
        assert request.cost == Decimal("0.30")
        assert request.expires_at == clock.now + timedelta(minutes=20)
        assert request.metadata.ip_address == "10.0.0.1"
        assert request.metadata.service == "telegram"
        assert store.table("users")[user.id].balance == Decimal("0.70")

        [purchase] = transactions(store)
        assert purchase.type == TransactionType.PURCHASE
        assert purchase.request_id == request.request_id
        assert purchase.balance_after == Decimal("0.70")

    @pytest.mark.asyncio
    async def test_applies_discounts(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(
            store,
            cost="0.30",
            discount="10",
            bulk_discounts=[
                BulkDiscountTier(min_quantity=1, max_quantity=10, discount_percent=Decimal("20"))
            ],
        )

        request = await request_service(store, clock).create_request(user.id, 1, 1)

        assert request.cost == Decimal("0.22")
        assert store.table("users")[user.id].balance == Decimal("0.78")

    @pytest.mark.asyncio
    async def test_insufficient_balance_changes_nothing(self, store, clock):
        user = add_user(store, "0.10")
        add_catalog(store, cost="0.30")
        provider = AsyncMock()

        with pytest.raises(InsufficientBalanceError):
            await request_service(store, clock, provider).create_request(user.id, 1, 1)

        provider.acquire_number.assert_not_called()
        assert store.table("number_requests") == {}
        assert transactions(store) == []
        assert store.table("users")[user.id].balance == Decimal("0.10")

    @pytest.mark.asyncio
    async def test_inactive_price_unavailable(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store, is_active=False)

        with pytest.raises(ServiceUnavailableError):
            await request_service(store, clock).create_request(user.id, 1, 1)

    @pytest.mark.asyncio
    async def test_unknown_pair_unavailable(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)

        with pytest.raises(ServiceUnavailableError):
            await request_service(store, clock).create_request(user.id, 1, 42)

    @pytest.mark.asyncio
    async def test_inactive_country_unavailable(self, store, clock):
        user = add_user(store, "1.00")
        country, _, _ = add_catalog(store)
        store.table("countries")[1] = country.model_copy(update={"is_active": False})

        with pytest.raises(ServiceUnavailableError):
            await request_service(store, clock).create_request(user.id, 1, 1)

    @pytest.mark.asyncio
    async def test_free_price_creates_no_transaction(self, store, clock):
        user = add_user(store)
        add_catalog(store, cost="0.00")

        request = await request_service(store, clock).create_request(user.id, 1, 1)

        assert request.cost == Decimal("0.00")
        assert transactions(store) == []

    @pytest.mark.asyncio
    async def test_failed_debit_releases_number(self, store, clock):
        """Если баланс ушел между проверкой и списанием, номер возвращается."""
        user = add_user(store, "0.30")
        add_catalog(store, cost="0.30")
        provider = AsyncMock()

        async def acquire(country, application):
            store.table("users")[user.id] = store.table("users")[user.id].model_copy(
                update={"balance": Decimal("0.00")}
            )
            return AcquiredNumber(phone_number="+70000000000", provider_request_id="sm-1")

        provider.acquire_number.side_effect = acquire

        with pytest.raises(InsufficientBalanceError):
            await request_service(store, clock, provider).create_request(user.id, 1, 1)

        provider.release.assert_called_once_with("sm-1", NumberRequestStatus.REJECT)
        assert store.table("number_requests") == {}

    @pytest.mark.asyncio
    async def test_concurrent_requests_never_overdraw(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store, cost="0.30")

        results = await asyncio.gather(
            *[request_service(store, clock).create_request(user.id, 1, 1) for _ in range(5)],
            return_exceptions=True,
        )

        created = [r for r in results if not isinstance(r, Exception)]
        assert len(created) == 3
        errors = [r for r in results if isinstance(r, Exception)]
        assert all(isinstance(e, InsufficientBalanceError) for e in errors)
        assert store.table("users")[user.id].balance == Decimal("0.10")
        assert len(transactions(store)) == 3


class TestDeliverSms:
    """Тесты приема SMS."""

    @pytest.mark.asyncio
    async def test_sms_sets_code_and_closes(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)

        clock.advance(minutes=2)
        delivered = await service.deliver_sms(request.request_id, "Your code is 123456")

        assert delivered.status == NumberRequestStatus.CLOSE
        assert delivered.sms_code == "123456"
        assert delivered.received_at == clock.now
        assert [s.message for s in delivered.sms_history] == ["Your code is 123456"]

    @pytest.mark.asyncio
    async def test_second_sms_replaces_code(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)

        await service.deliver_sms(request.request_id, "code 1111")
        delivered = await service.deliver_sms(request.request_id, "code 2222")

        assert delivered.sms_code == "2222"
        assert len(delivered.sms_history) == 2

    @pytest.mark.asyncio
    async def test_expired_request_rejects_sms(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)

        clock.advance(minutes=21)
        assert await service.sweep_expired() == 1

        with pytest.raises(AlreadyExpiredError):
            await service.deliver_sms(request.request_id, "code 1234")

        stored = store.table("number_requests")[request.request_id]
        assert stored.status == NumberRequestStatus.EXPIRED
        assert stored.sms_code is None

    @pytest.mark.asyncio
    async def test_sms_at_expiry_instant_loses(self, store, clock):
        """В момент expires_at заявка уже просрочена, даже без прохода очистки."""
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)

        clock.advance(minutes=20)
        with pytest.raises(AlreadyExpiredError):
            await service.deliver_sms(request.request_id, "code 1234")

        assert store.table("number_requests")[request.request_id].status == NumberRequestStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_terminal_request_rejects_sms(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)
        await service.set_status(request.request_id, user.id, "reject")

        with pytest.raises(InvalidTransitionError):
            await service.deliver_sms(request.request_id, "code 1234")

    @pytest.mark.asyncio
    async def test_unknown_request(self, store, clock):
        with pytest.raises(NotFoundError):
            await request_service(store, clock).deliver_sms("missing", "code 1234")


class TestSweep:
    """Тесты фоновой очистки."""

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        first = await service.create_request(user.id, 1, 1)
        clock.advance(minutes=10)
        second = await service.create_request(user.id, 1, 1)

        clock.advance(minutes=11)
        assert await service.sweep_expired() == 1
        assert await service.sweep_expired() == 0

        table = store.table("number_requests")
        assert table[first.request_id].status == NumberRequestStatus.EXPIRED
        assert table[second.request_id].status == NumberRequestStatus.READY

    @pytest.mark.asyncio
    async def test_sweep_skips_terminal(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)
        await service.set_status(request.request_id, user.id, "used")

        clock.advance(hours=1)
        assert await service.sweep_expired() == 0
        assert store.table("number_requests")[request.request_id].status == NumberRequestStatus.USED


class TestSetStatus:
    """Тесты смены статуса клиентом."""

    @pytest.mark.asyncio
    async def test_close_then_used(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)

        closed = await service.set_status(request.request_id, user.id, "close")
        used = await service.set_status(request.request_id, user.id, "used")

        assert closed.status == NumberRequestStatus.CLOSE
        assert used.status == NumberRequestStatus.USED
        assert used.completed_at == clock.now

    @pytest.mark.asyncio
    async def test_same_status_is_noop(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)

        again = await service.set_status(request.request_id, user.id, "ready")

        assert again.status == NumberRequestStatus.READY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal", ["reject", "used"])
    @pytest.mark.parametrize("target", ["ready", "close"])
    async def test_terminal_cannot_reopen(self, store, clock, terminal, target):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)
        await service.set_status(request.request_id, user.id, terminal)

        with pytest.raises(InvalidTransitionError):
            await service.set_status(request.request_id, user.id, target)

    @pytest.mark.asyncio
    async def test_close_cannot_return_to_ready(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)
        await service.set_status(request.request_id, user.id, "close")

        with pytest.raises(InvalidTransitionError):
            await service.set_status(request.request_id, user.id, "ready")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["expired", "done", ""])
    async def test_invalid_status_value(self, store, clock, value):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)

        with pytest.raises(InvalidParameterError):
            await service.set_status(request.request_id, user.id, value)

    @pytest.mark.asyncio
    async def test_expired_request_cannot_change(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)

        clock.advance(minutes=25)
        with pytest.raises(InvalidTransitionError):
            await service.set_status(request.request_id, user.id, "used")

        assert store.table("number_requests")[request.request_id].status == NumberRequestStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_other_users_request_not_found(self, store, clock):
        owner = add_user(store, "1.00")
        other = add_user(store, "1.00", email="other@example.com")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(owner.id, 1, 1)

        with pytest.raises(NotFoundError):
            await service.set_status(request.request_id, other.id, "reject")
        with pytest.raises(NotFoundError):
            await service.get_request(request.request_id, other.id)

    @pytest.mark.asyncio
    async def test_reject_keeps_charge(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store, cost="0.30")
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)

        await service.set_status(request.request_id, user.id, "reject")

        assert store.table("users")[user.id].balance == Decimal("0.70")
        assert len(transactions(store)) == 1

    @pytest.mark.asyncio
    async def test_release_failure_does_not_fail_transition(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        provider = AsyncMock()
        provider.acquire_number.return_value = AcquiredNumber(
            phone_number="+70000000001", provider_request_id="sm-7"
        )
        provider.release.side_effect = UpstreamServiceError("sms-man is down")
        service = request_service(store, clock, provider)
        request = await service.create_request(user.id, 1, 1)

        rejected = await service.set_status(request.request_id, user.id, "reject")

        assert rejected.status == NumberRequestStatus.REJECT
        provider.release.assert_called_once_with("sm-7", NumberRequestStatus.REJECT)


class TestQueries:
    """Тесты выборок заявок."""

    @pytest.mark.asyncio
    async def test_active_requests_and_stats(self, store, clock):
        user = add_user(store, "5.00")
        add_catalog(store)
        service = request_service(store, clock)
        first = await service.create_request(user.id, 1, 1)
        second = await service.create_request(user.id, 1, 1)
        await service.set_status(first.request_id, user.id, "used")

        active = await service.get_active_requests(user.id)
        page = await service.list_user_requests(user.id, NumberRequestStatus.USED)
        stats = await service.get_stats()

        assert [r.request_id for r in active] == [second.request_id]
        assert page.pagination.total == 1
        assert stats["used"] == 1
        assert stats["ready"] == 1
        assert stats["expired"] == 0

    @pytest.mark.asyncio
    async def test_get_request_expires_lazily(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        service = request_service(store, clock)
        request = await service.create_request(user.id, 1, 1)

        clock.advance(minutes=30)
        with pytest.raises(AlreadyExpiredError):
            await service.get_request(request.request_id, user.id)

        assert store.table("number_requests")[request.request_id].status == NumberRequestStatus.EXPIRED


class TestPolling:
    """Тесты опроса провайдера sms-man."""

    @staticmethod
    def sms_man(responses: dict) -> SmsManProvider:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=responses[request.url.params["action"]])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return SmsManProvider("token", "https://sms-man.test/api", client)

    @pytest.mark.asyncio
    async def test_poll_delivers_code(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        provider = self.sms_man(
            {
                "get_number": {"status": "success", "data": {"number": "79990001122", "request_id": 55}},
                "get_sms": {"status": "success", "data": {"sms": "Telegram code: 48213"}},
                "set_status": {"status": "success"},
            }
        )
        service = request_service(store, clock, provider)
        request = await service.create_request(user.id, 1, 1)

        polled = await service.poll_sms(request.request_id, user.id)

        assert request.phone_number == "+79990001122"
        assert request.provider_request_id == "55"
        assert polled.sms_code == "48213"
        assert polled.status == NumberRequestStatus.CLOSE

    @pytest.mark.asyncio
    async def test_poll_waiting(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        provider = self.sms_man(
            {
                "get_number": {"status": "success", "data": {"number": "+79990001122", "request_id": 56}},
                "get_sms": {"status": "error", "message": "wait_sms"},
            }
        )
        service = request_service(store, clock, provider)
        request = await service.create_request(user.id, 1, 1)

        polled = await service.poll_sms(request.request_id, user.id)

        assert polled.sms_code is None
        assert polled.status == NumberRequestStatus.READY

    @pytest.mark.asyncio
    async def test_refused_number_charges_nothing(self, store, clock):
        user = add_user(store, "1.00")
        add_catalog(store)
        provider = self.sms_man({"get_number": {"status": "error", "message": "no numbers"}})

        with pytest.raises(UpstreamServiceError):
            await request_service(store, clock, provider).create_request(user.id, 1, 1)

        assert store.table("users")[user.id].balance == Decimal("1.00")
        assert store.table("number_requests") == {}

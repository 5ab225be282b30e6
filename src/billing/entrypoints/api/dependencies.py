"""Зависимости для API платежей."""

from typing import Annotated

from fastapi import Depends

from base.dependencies import get_db
from billing.services.services import LedgerService
from billing.services.unit_of_work import PostgreSQLLedgerUnitOfWork


async def get_ledger_service(db=Depends(get_db)) -> LedgerService:
    """Получение сервиса баланса."""
    return LedgerService(PostgreSQLLedgerUnitOfWork(lambda: db))


LedgerServiceDependency = Annotated[LedgerService, Depends(get_ledger_service)]

#!/usr/bin/env python3
"""Воркер истечения срока заявок на номера.

Периодически переводит активные заявки с истекшим сроком в статус expired.
"""

import asyncio
import os
import signal
import sys
import time
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from base.config import get_expiry_sweep_interval
from base.orm import engine, get_session_factory
from number_requests.services.providers import LocalNumberProvider
from number_requests.services.services import NumberRequestService
from number_requests.services.unit_of_work import PostgreSQLNumberRequestUnitOfWork


def default_service_factory() -> NumberRequestService:
    return NumberRequestService(
        PostgreSQLNumberRequestUnitOfWork(get_session_factory()), LocalNumberProvider()
    )


class ExpiryWorker:
    """Воркер очистки просроченных заявок."""

    def __init__(
        self,
        service_factory: Callable[[], NumberRequestService] = default_service_factory,
        interval: Optional[int] = None,
        log_to_file: bool = True,
    ):
        self.worker_id = f"expiry_{os.getpid()}_{int(time.time())}"
        self.service_factory = service_factory
        self.interval = interval if interval is not None else get_expiry_sweep_interval()
        self.is_running = True

        if log_to_file:
            logger.add(
                f"logs/{self.worker_id}.log",
                rotation="100 MB",
                retention="7 days",
                level="INFO",
            )

    def register_signal_handlers(self) -> None:
        """Корректная остановка по SIGINT/SIGTERM."""

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, starting graceful shutdown...")
            self.is_running = False

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def run_once(self) -> int:
        """Один проход очистки."""
        expired = await self.service_factory().sweep_expired()
        if expired:
            logger.info(f"Expired {expired} number requests")
        return expired

    async def _sleep(self) -> None:
        # Короткие шаги, чтобы остановка не ждала весь интервал
        for _ in range(self.interval):
            if not self.is_running:
                return
            await asyncio.sleep(1)

    async def run(self) -> None:
        """Основной цикл воркера."""
        logger.info(f"Starting expiry worker {self.worker_id}, interval {self.interval}s")

        while self.is_running:
            try:
                await self.run_once()
            except SQLAlchemyError as e:
                logger.error(f"Database error: {e}")
            except Exception as e:
                logger.exception(f"Unexpected error: {e}")
            await self._sleep()

        await engine.dispose()
        logger.info(f"Expiry worker {self.worker_id} stopped")


def main():
    """Запуск воркера."""
    logger.info("Starting expiry worker...")

    try:
        worker = ExpiryWorker()
        worker.register_signal_handlers()
        asyncio.run(worker.run())
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Вызовы внешних HTTP сервисов через httpx."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from base.config import get_http_timeout
from base.exceptions import UpstreamServiceError, UpstreamTimeoutError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def http_client(
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Переданный клиент или новый клиент с таймаутом из настроек."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=httpx.Timeout(get_http_timeout())) as new_client:
        yield new_client


async def send(
    client: httpx.AsyncClient, method: str, url: str, *, service: str, **kwargs: Any
) -> httpx.Response:
    """Запрос к провайдеру с приведением ошибок транспорта к исключениям приложения."""
    try:
        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
    except httpx.TimeoutException as e:
        logger.warning(f"{service} timed out: {method} {url}")
        raise UpstreamTimeoutError(f"{service} did not respond in time") from e
    except httpx.HTTPStatusError as e:
        logger.warning(f"{service} returned {e.response.status_code}: {method} {url}")
        raise UpstreamServiceError(
            f"{service} returned status {e.response.status_code}"
        ) from e
    except httpx.HTTPError as e:
        logger.warning(f"{service} request failed: {e}")
        raise UpstreamServiceError(f"{service} request failed") from e
    return response


def json_body(response: httpx.Response, service: str) -> dict:
    """Тело ответа провайдера как словарь."""
    try:
        data = response.json()
    except ValueError as e:
        raise UpstreamServiceError(f"{service} returned malformed response") from e
    if not isinstance(data, dict):
        raise UpstreamServiceError(f"{service} returned malformed response")
    return data

"""Обработчики исключений для FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .exceptions import (
    AlreadyExpiredError,
    AppException,
    AuthenticationError,
    AuthorizationError,
    DuplicatePaymentError,
    InsufficientBalanceError,
    InternalError,
    InvalidParameterError,
    InvalidTransitionError,
    NotFoundError,
    ServiceUnavailableError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)

INTERNAL_ERROR_DETAIL = "Internal server error"


def _error_response(status_code: int, detail: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"detail": detail, "type": error_type}
    )


def add_exception_handlers(app: FastAPI) -> None:
    """Добавление обработчиков исключений в приложение."""

    @app.exception_handler(AppException)
    async def app_exception_handler(
        request: Request, exc: AppException
    ) -> JSONResponse:
        """Базовый обработчик исключений приложения."""
        logger.error(f"Unhandled application error on {request.url.path}: {exc!r}")
        return _error_response(500, INTERNAL_ERROR_DETAIL, "internal_error")

    @app.exception_handler(InternalError)
    async def internal_exception_handler(
        request: Request, exc: InternalError
    ) -> JSONResponse:
        """Обработчик внутренних ошибок: детали только в логах."""
        logger.error(f"Internal error on {request.url.path}: {exc!r}")
        return _error_response(500, INTERNAL_ERROR_DETAIL, "internal_error")

    @app.exception_handler(AuthenticationError)
    async def auth_exception_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        """Обработчик ошибок аутентификации."""
        return _error_response(401, str(exc), "authentication_error")

    @app.exception_handler(AuthorizationError)
    async def authorization_exception_handler(
        request: Request, exc: AuthorizationError
    ) -> JSONResponse:
        """Обработчик ошибок авторизации."""
        return _error_response(403, str(exc), "authorization_error")

    @app.exception_handler(InvalidParameterError)
    async def invalid_parameter_handler(
        request: Request, exc: InvalidParameterError
    ) -> JSONResponse:
        """Обработчик ошибок параметров запроса."""
        return _error_response(400, str(exc), "invalid_parameter")

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Ошибки валидации FastAPI отдаются как некорректные параметры."""
        fields = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
        return _error_response(
            400, f"Invalid parameters: {', '.join(fields)}", "invalid_parameter"
        )

    @app.exception_handler(InsufficientBalanceError)
    async def insufficient_balance_handler(
        request: Request, exc: InsufficientBalanceError
    ) -> JSONResponse:
        """Обработчик ошибок недостатка средств."""
        return _error_response(400, str(exc), "insufficient_balance")

    @app.exception_handler(NotFoundError)
    async def not_found_handler(
        request: Request, exc: NotFoundError
    ) -> JSONResponse:
        """Обработчик ошибок отсутствия сущности."""
        return _error_response(404, str(exc), "not_found")

    @app.exception_handler(ServiceUnavailableError)
    async def service_unavailable_handler(
        request: Request, exc: ServiceUnavailableError
    ) -> JSONResponse:
        """Обработчик недоступной комбинации страны и приложения."""
        return _error_response(404, str(exc), "service_unavailable")

    @app.exception_handler(AlreadyExpiredError)
    async def already_expired_handler(
        request: Request, exc: AlreadyExpiredError
    ) -> JSONResponse:
        """Обработчик просроченных заявок."""
        return _error_response(404, str(exc), "already_expired")

    @app.exception_handler(DuplicatePaymentError)
    async def duplicate_payment_handler(
        request: Request, exc: DuplicatePaymentError
    ) -> JSONResponse:
        """Обработчик повторного зачисления платежа."""
        return _error_response(409, str(exc), "duplicate_payment")

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(
        request: Request, exc: InvalidTransitionError
    ) -> JSONResponse:
        """Обработчик недопустимой смены статуса."""
        return _error_response(409, str(exc), "invalid_transition")

    @app.exception_handler(UpstreamTimeoutError)
    async def upstream_timeout_handler(
        request: Request, exc: UpstreamTimeoutError
    ) -> JSONResponse:
        """Обработчик таймаута внешнего провайдера."""
        logger.warning(f"Upstream timeout on {request.url.path}: {exc}")
        return _error_response(504, str(exc), "upstream_timeout")

    @app.exception_handler(UpstreamServiceError)
    async def upstream_error_handler(
        request: Request, exc: UpstreamServiceError
    ) -> JSONResponse:
        """Обработчик ошибок внешнего провайдера."""
        logger.warning(f"Upstream error on {request.url.path}: {exc}")
        return _error_response(502, str(exc), "upstream_error")

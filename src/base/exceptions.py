"""Кастомные исключения приложения."""


class AppException(Exception):
    """Базовое исключение приложения."""
    pass


class AuthenticationError(AppException):
    """Ошибка аутентификации."""
    pass


class AuthorizationError(AppException):
    """Ошибка авторизации."""
    pass


class InvalidParameterError(AppException):
    """Отсутствующий или некорректный параметр запроса."""
    pass


class NotFoundError(AppException):
    """Сущность не найдена."""
    pass


class ServiceUnavailableError(AppException):
    """Комбинация страны, приложения и цены недоступна."""
    pass


class InsufficientBalanceError(AppException):
    """Недостаточно средств на балансе."""
    pass


class DuplicatePaymentError(AppException):
    """Платеж с таким внешним идентификатором уже зачислен."""
    pass


class InvalidTransitionError(AppException):
    """Недопустимая смена статуса заявки."""
    pass


class AlreadyExpiredError(AppException):
    """Заявка на номер уже просрочена."""
    pass


class UpstreamServiceError(AppException):
    """Ошибка внешнего провайдера."""
    pass


class UpstreamTimeoutError(UpstreamServiceError):
    """Внешний провайдер не ответил вовремя."""
    pass


class InternalError(AppException):
    """Непредвиденная внутренняя ошибка."""
    pass


class InvalidTokenException(AuthenticationError):
    """Исключение о том, что токен недействителен."""

    def __init__(self, detail: str) -> None:
        """Инициализация исключения."""
        super().__init__(detail)
        self.detail = detail

# dispatch_engine/common/errors.py
"""
Ошибки диспетчерского движка.

Все ошибки — ожидаемые, видимые вызывающей стороне состояния:
водитель или компания получают понятный ответ ("заказ уже взят",
"нельзя отменить завершённую заявку"), а не общий сбой.
HTTP-слой отображает их в коды ответа через атрибут ``status_code``.
"""

from __future__ import annotations


class DispatchError(Exception):
    """Базовая ошибка движка."""

    code: str = "dispatch_error"
    status_code: int = 400
    default_message: str = "dispatch error"

    def __init__(self, message: str | None = None, **context: object) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict[str, object]:
        """Тело ответа для API (контекст ошибки добавляется как есть)."""
        body: dict[str, object] = {"code": self.code, "detail": self.message}
        body.update(self.context)
        return body


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFound(DispatchError):
    code = "not_found"
    status_code = 404
    default_message = "not found"


class RequestNotFound(NotFound):
    code = "request_not_found"
    default_message = "delivery request not found"


class DriverNotFound(NotFound):
    code = "driver_not_found"
    default_message = "driver not found"


class OfferNotFound(NotFound):
    code = "offer_not_found"
    default_message = "no offer for this driver"


# =============================================================================
# ГОНКИ ЗА ЗАЯВКУ
# =============================================================================

class AlreadyClaimed(DispatchError):
    code = "already_claimed"
    status_code = 409
    default_message = "offer taken by another driver"


class AlreadyResponded(DispatchError):
    code = "already_responded"
    status_code = 409
    default_message = "offer already responded"


class OfferExpired(DispatchError):
    code = "offer_expired"
    status_code = 410
    default_message = "offer expired"


class DriverBusy(DispatchError):
    code = "driver_busy"
    status_code = 409
    default_message = "driver already has a delivery waiting for pickup"


# =============================================================================
# ЖИЗНЕННЫЙ ЦИКЛ
# =============================================================================

class InvalidTransition(DispatchError):
    code = "invalid_transition"
    status_code = 422
    default_message = "transition not allowed in current state"


class NotAssignedDriver(InvalidTransition):
    code = "not_assigned_driver"
    status_code = 403
    default_message = "driver is not assigned to this request"


class AlreadyTerminal(DispatchError):
    code = "already_terminal"
    status_code = 409
    default_message = "request is already completed or cancelled"


class NoDriversAvailable(DispatchError):
    code = "no_drivers_available"
    status_code = 409
    default_message = "no driver available"


# =============================================================================
# НАСТРОЙКИ
# =============================================================================

class InvalidSettings(DispatchError):
    code = "invalid_settings"
    status_code = 422
    default_message = "invalid dispatch settings"

"""
Типизированные ошибки бизнес-операций над заказами и заявками.

Все ошибки восстановимые: вызывающий код получает их синхронно и решает,
что показать пользователю. Conflict и NotFound различаются намеренно:
"заказ уже взял другой исполнитель" и "заказ не найден" - разные сообщения.
"""
from __future__ import annotations

from typing import Optional

__all__ = [
    "OrderServiceError",
    "NotFound",
    "Forbidden",
    "InvalidState",
    "InvalidTransition",
    "Conflict",
    "ValidationError",
    "InternalError",
]


class OrderServiceError(Exception):
    """Base class for order/application business errors."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(OrderServiceError):
    code = "not_found"


class Forbidden(OrderServiceError):
    code = "forbidden"


class InvalidState(OrderServiceError):
    code = "invalid_state"


class InvalidTransition(InvalidState):
    code = "invalid_transition"

    def __init__(
        self,
        current: object,
        requested: object,
        actor: object,
        message: Optional[str] = None,
    ) -> None:
        self.current = current
        self.requested = requested
        self.actor = actor
        super().__init__(
            message
            or f"transition {_label(current)} -> {_label(requested)} is not allowed for {_label(actor)}"
        )


class Conflict(OrderServiceError):
    code = "conflict"


class ValidationError(OrderServiceError):
    code = "validation_error"


class InternalError(OrderServiceError):
    """Opaque infrastructure failure (DB connection, deadlock, ...)."""

    code = "internal_error"


def _label(value: object) -> str:
    return str(getattr(value, "value", value))

"""
Машина состояний заказа.

Таблица переходов задана явно; transition() - чистая функция без состояния.
OPEN -> IN_PROGRESS доступен только системе: это побочный эффект
принятия заявки, а не ручной переход.
"""
from __future__ import annotations

from typing import Mapping

from work_exchange.db.models import ActorType, OrderStatus
from work_exchange.services.errors import InvalidTransition

__all__ = [
    "TRANSITIONS",
    "TERMINAL_STATUSES",
    "ASSIGNED_STATUSES",
    "transition",
    "can_transition",
    "allowed_transitions",
]

S = OrderStatus
A = ActorType

TRANSITIONS: Mapping[tuple[OrderStatus, OrderStatus], frozenset[ActorType]] = {
    (S.DRAFT, S.OPEN): frozenset({A.CUSTOMER}),
    (S.OPEN, S.CANCELLED): frozenset({A.CUSTOMER}),
    (S.OPEN, S.IN_PROGRESS): frozenset({A.SYSTEM}),
    (S.IN_PROGRESS, S.WAITING_CONFIRMATION): frozenset({A.EXECUTOR}),
    (S.IN_PROGRESS, S.CANCELLED): frozenset({A.CUSTOMER, A.EXECUTOR}),
    (S.WAITING_CONFIRMATION, S.COMPLETED): frozenset({A.CUSTOMER}),
    (S.WAITING_CONFIRMATION, S.IN_PROGRESS): frozenset({A.CUSTOMER}),
    (S.WAITING_CONFIRMATION, S.DISPUTED): frozenset({A.CUSTOMER, A.EXECUTOR}),
}

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED})

# Статусы, в которых у заказа обязательно есть исполнитель
ASSIGNED_STATUSES = frozenset({S.IN_PROGRESS, S.WAITING_CONFIRMATION, S.COMPLETED})


def can_transition(current: OrderStatus, requested: OrderStatus, actor: ActorType) -> bool:
    return actor in TRANSITIONS.get((OrderStatus(current), OrderStatus(requested)), frozenset())


def transition(current: OrderStatus, requested: OrderStatus, actor: ActorType) -> OrderStatus:
    """Return the new status or raise InvalidTransition."""
    if not can_transition(current, requested, actor):
        raise InvalidTransition(current, requested, actor)
    return OrderStatus(requested)


def allowed_transitions(current: OrderStatus, actor: ActorType) -> list[OrderStatus]:
    """Statuses *actor* may move an order to from *current*, in table order."""
    current = OrderStatus(current)
    return [
        target
        for (source, target), actors in TRANSITIONS.items()
        if source == current and actor in actors
    ]

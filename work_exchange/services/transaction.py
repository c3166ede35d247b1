"""
Unit-of-work обёртка для методов сервисов.

Метод сервиса выполняется целиком в одной транзакции сессии self.session.
Бизнес-ошибка, поднятая до первой записи (проверки прав, статусов,
валидация), не откатывает сессию: объекты вызывающего кода остаются
загруженными, открытая читающая транзакция просто закрывается.
Если запись уже была (UPDATE/INSERT/flush), транзакция откатывается.
Ошибки инфраструктуры логируются и превращаются в непрозрачный InternalError.
"""
from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import ORMExecuteState, Session

from work_exchange.services.errors import InternalError, OrderServiceError

T = TypeVar("T")

logger = logging.getLogger(__name__)

WROTE_KEY = "work_exchange.unit_of_work.wrote"


@event.listens_for(Session, "do_orm_execute")
def _mark_dml(state: ORMExecuteState) -> None:
    if state.is_insert or state.is_update or state.is_delete:
        state.session.info[WROTE_KEY] = True


@event.listens_for(Session, "before_flush")
def _mark_flush(session: Session, flush_context: Any, instances: Any) -> None:
    # и неудачный flush (IntegrityError) считается записью
    session.info[WROTE_KEY] = True


def transactional(operation: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
            session = self.session
            session.info[WROTE_KEY] = False
            try:
                return await func(self, *args, **kwargs)
            except OrderServiceError as exc:
                if session.info.get(WROTE_KEY):
                    logger.info("[ROLLBACK] %s: %s after write", operation, exc.code)
                    await session.rollback()
                elif session.in_transaction():
                    # ничего не записано: закрываем читающую транзакцию без expire
                    await session.commit()
                raise
            except SQLAlchemyError as exc:
                logger.exception("[FAILED] %s: database error", operation)
                await session.rollback()
                raise InternalError(f"{operation} failed") from exc
            except BaseException:
                # отмена задачи / таймаут: ничего не оставляем полузаписанным
                await session.rollback()
                raise
            finally:
                session.info.pop(WROTE_KEY, None)

        return wrapper

    return decorator

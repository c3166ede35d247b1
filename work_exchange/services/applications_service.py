"""
Сервис арбитража заявок.

Подача, принятие, отклонение и отзыв заявок исполнителей.

Принятие заявки - единственная операция с реальной гонкой: два запроса
могут одновременно принимать разные заявки одного заказа. Проверки статусов
до записи носят информационный характер; корректность обеспечивает
условный UPDATE заказа (compare-and-swap по status='OPEN' и
executor_id IS NULL) внутри той же транзакции. Ноль затронутых строк
означает, что заказ уже назначен, и операция откатывается с Conflict.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from work_exchange.db import models as m
from work_exchange.infra.structured_logging import ArbitrationEvent, log_arbitration_event
from work_exchange.services import directory
from work_exchange.services.dto import ApplicationBid
from work_exchange.services.errors import (
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationError,
)
from work_exchange.services.history import record_status_change
from work_exchange.services.order_state import transition
from work_exchange.services.transaction import transactional

_log = logging.getLogger(__name__)

UTC = timezone.utc

OTHER_EXECUTOR_SELECTED = "other executor selected"
DEFAULT_REJECTION_REASON = "rejected by customer"
WITHDRAWN_REASON = "withdrawn by executor"

# повторное принятие уже разобранной заявки - конфликт, а не ошибка состояния
RESOLVED_BY_ARBITRATION = frozenset({m.ApplicationStatus.ACCEPTED, m.ApplicationStatus.REJECTED})


def validate_bid(bid: ApplicationBid) -> None:
    if bid.proposed_price is not None and Decimal(str(bid.proposed_price)) < 0:
        raise ValidationError("proposed price must not be negative")
    if bid.proposed_duration_days is not None and bid.proposed_duration_days < 1:
        raise ValidationError("proposed duration must be at least one day")


class ApplicationsService:
    """Сервис заявок исполнителей на заказы."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load_order(self, order_id: int) -> m.orders:
        result = await self.session.execute(
            select(m.orders)
            .where(m.orders.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFound(f"order #{order_id} not found")
        return order

    async def _load_application(self, application_id: int) -> tuple[m.order_applications, m.orders]:
        result = await self.session.execute(
            select(m.order_applications)
            .where(m.order_applications.id == application_id)
            .execution_options(populate_existing=True)
        )
        application = result.scalar_one_or_none()
        if application is None:
            raise NotFound(f"application #{application_id} not found")
        order = await self._load_order(application.order_id)
        return application, order

    async def _resolve_pending(
        self,
        application: m.order_applications,
        status: m.ApplicationStatus,
        reason: Optional[str],
    ) -> None:
        """PENDING -> *status* as a conditional update."""
        result = await self.session.execute(
            update(m.order_applications)
            .where(
                m.order_applications.id == application.id,
                m.order_applications.status == m.ApplicationStatus.PENDING,
            )
            .values(status=status, rejection_reason=reason, updated_at=func.now())
            .returning(m.order_applications.id)
            .execution_options(synchronize_session=False)
        )
        if result.first() is None:
            raise Conflict(f"application #{application.id} was already processed")

    # ---------------------------------------------------------------- create

    @transactional("create_application")
    async def create_application(
        self,
        executor_id: int,
        order_id: int,
        bid: Optional[ApplicationBid] = None,
    ) -> m.order_applications:
        bid = bid or ApplicationBid()
        validate_bid(bid)
        _log.info("create_application START: order=%s executor=%s", order_id, executor_id)

        order = await self._load_order(order_id)
        if not order.can_receive_applications:
            raise InvalidState(f"order #{order_id} does not accept applications")
        if order.customer_id == executor_id:
            raise Forbidden("cannot apply to your own order")

        await directory.get_executor_profile(self.session, executor_id)

        existing = await self.session.execute(
            select(m.order_applications.id).where(
                m.order_applications.order_id == order_id,
                m.order_applications.executor_id == executor_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise Conflict(f"application for order #{order_id} already exists")

        application = m.order_applications(
            order_id=order_id,
            executor_id=executor_id,
            status=m.ApplicationStatus.PENDING,
            proposed_price=bid.proposed_price,
            proposed_duration_days=bid.proposed_duration_days,
            message=bid.message or "",
            available_from=bid.available_from,
        )
        self.session.add(application)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # параллельная подача той же пары (order_id, executor_id)
            _log.info("create_application: duplicate insert order=%s executor=%s", order_id, executor_id)
            raise Conflict(f"application for order #{order_id} already exists") from exc

        await self.session.execute(
            update(m.orders)
            .where(m.orders.id == order_id)
            .values(applications_count=m.orders.applications_count + 1)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        await self.session.refresh(application)

        log_arbitration_event(
            ArbitrationEvent.APPLICATION_CREATED,
            order_id=order_id,
            application_id=application.id,
            executor_id=executor_id,
            details={"proposed_price": bid.proposed_price},
        )
        return application

    # ---------------------------------------------------------------- accept

    @transactional("accept_application")
    async def accept_application(self, customer_id: int, application_id: int) -> m.orders:
        """
        Атомарное принятие заявки заказчиком.

        В одной транзакции:
        1. заказ: OPEN -> IN_PROGRESS, executor_id, agreed_price, actual_start_date
           (условный UPDATE, проверяет что заказ ещё свободен);
        2. заявка: PENDING -> ACCEPTED;
        3. остальные PENDING-заявки заказа -> REJECTED ("other executor selected");
        4. запись в историю статусов.

        Raises:
            NotFound: заявки или заказа нет
            Forbidden: заказ принадлежит другому заказчику
            Conflict: заказ уже назначен (в т.ч. параллельным запросом)
                или заявка уже принята/отклонена
            InvalidState: заказ не OPEN или заявка отозвана
        """
        _log.info("accept_application START: application=%s customer=%s", application_id, customer_id)

        application, order = await self._load_application(application_id)
        order_id = order.id

        if order.customer_id != customer_id:
            raise Forbidden(f"user #{customer_id} does not own order #{order_id}")
        if order.executor_id is not None:
            log_arbitration_event(
                ArbitrationEvent.ACCEPT_CONFLICT,
                order_id=order_id,
                application_id=application_id,
                actor_id=customer_id,
                reason="already_assigned",
                level="WARNING",
            )
            raise Conflict(f"order #{order_id} already assigned")
        if application.status in RESOLVED_BY_ARBITRATION:
            raise Conflict(f"application #{application_id} was already {application.status.value}")
        if order.status != m.OrderStatus.OPEN:
            raise InvalidState(f"order #{order_id} is {order.status.value}, not OPEN")
        if application.status != m.ApplicationStatus.PENDING:
            raise InvalidState(f"application #{application_id} is {application.status.value}")

        new_status = transition(order.status, m.OrderStatus.IN_PROGRESS, m.ActorType.SYSTEM)
        now_utc = datetime.now(UTC)

        # Шаг 1: compare-and-swap по статусу заказа
        update_result = await self.session.execute(
            update(m.orders)
            .where(
                m.orders.id == order_id,
                m.orders.status == m.OrderStatus.OPEN,
                m.orders.executor_id.is_(None),
            )
            .values(
                status=new_status,
                executor_id=application.executor_id,
                agreed_price=application.proposed_price,
                actual_start_date=now_utc,
                version=m.orders.version + 1,
                updated_at=func.now(),
            )
            .returning(m.orders.id)
            .execution_options(synchronize_session=False)
        )
        if update_result.first() is None:
            _log.warning("accept_application: order=%s UPDATE returned 0 rows (race condition)", order_id)
            log_arbitration_event(
                ArbitrationEvent.ACCEPT_CONFLICT,
                order_id=order_id,
                application_id=application_id,
                actor_id=customer_id,
                reason="cas_failed",
                level="WARNING",
            )
            raise Conflict(f"order #{order_id} already assigned")

        # Шаг 2: сама заявка
        await self._resolve_pending(application, m.ApplicationStatus.ACCEPTED, None)

        # Шаг 3: остальные ожидающие заявки
        siblings = await self.session.execute(
            update(m.order_applications)
            .where(
                m.order_applications.order_id == order_id,
                m.order_applications.id != application_id,
                m.order_applications.status == m.ApplicationStatus.PENDING,
            )
            .values(
                status=m.ApplicationStatus.REJECTED,
                rejection_reason=OTHER_EXECUTOR_SELECTED,
                updated_at=func.now(),
            )
            .returning(m.order_applications.id)
            .execution_options(synchronize_session=False)
        )
        rejected_ids = [row[0] for row in siblings.all()]

        # Шаг 4: история
        await record_status_change(
            self.session,
            order_id=order_id,
            from_status=m.OrderStatus.OPEN,
            to_status=new_status,
            actor_type=m.ActorType.SYSTEM,
            changed_by_user_id=customer_id,
            reason="application_accepted",
            context={
                "application_id": application_id,
                "executor_id": application.executor_id,
                "rejected_application_ids": rejected_ids,
            },
        )

        await self.session.commit()
        _log.info(
            "accept_application SUCCESS: order=%s executor=%s rejected=%s",
            order_id, application.executor_id, len(rejected_ids),
        )

        log_arbitration_event(
            ArbitrationEvent.APPLICATION_ACCEPTED,
            order_id=order_id,
            application_id=application_id,
            actor_id=customer_id,
            executor_id=application.executor_id,
            from_status=m.OrderStatus.OPEN,
            to_status=new_status,
        )
        if rejected_ids:
            log_arbitration_event(
                ArbitrationEvent.SIBLINGS_REJECTED,
                order_id=order_id,
                reason=OTHER_EXECUTOR_SELECTED,
                details={"application_ids": rejected_ids},
            )

        await self.session.refresh(order)
        return order

    # ------------------------------------------------------- reject / withdraw

    @transactional("reject_application")
    async def reject_application(
        self,
        customer_id: int,
        application_id: int,
        reason: Optional[str] = None,
    ) -> m.order_applications:
        application, order = await self._load_application(application_id)
        if order.customer_id != customer_id:
            raise Forbidden(f"user #{customer_id} does not own order #{order.id}")
        if application.status != m.ApplicationStatus.PENDING:
            raise InvalidState(f"application #{application_id} was already processed")

        reason = reason or DEFAULT_REJECTION_REASON
        await self._resolve_pending(application, m.ApplicationStatus.REJECTED, reason)
        await self.session.commit()
        await self.session.refresh(application)

        log_arbitration_event(
            ArbitrationEvent.APPLICATION_REJECTED,
            order_id=order.id,
            application_id=application_id,
            actor_id=customer_id,
            executor_id=application.executor_id,
            reason=reason,
        )
        return application

    @transactional("withdraw_application")
    async def withdraw_application(self, executor_id: int, application_id: int) -> m.order_applications:
        application, order = await self._load_application(application_id)
        if application.executor_id != executor_id:
            raise Forbidden(f"user #{executor_id} did not submit application #{application_id}")
        if application.status != m.ApplicationStatus.PENDING:
            raise InvalidState("only pending applications can be withdrawn")

        await self._resolve_pending(application, m.ApplicationStatus.WITHDRAWN, WITHDRAWN_REASON)
        await self.session.commit()
        await self.session.refresh(application)

        log_arbitration_event(
            ArbitrationEvent.APPLICATION_WITHDRAWN,
            order_id=order.id,
            application_id=application_id,
            actor_id=executor_id,
            executor_id=executor_id,
        )
        return application

    # ----------------------------------------------------------------- reads

    @transactional("get_order_applications")
    async def get_order_applications(
        self,
        order_id: int,
        customer_id: Optional[int] = None,
    ) -> list[m.order_applications]:
        """
        Applications on an order, newest first.

        With customer_id the call is owner-only and counts as the owner
        looking at the list: unseen applications get is_viewed=True.
        """
        order = await self._load_order(order_id)
        if customer_id is not None and order.customer_id != customer_id:
            raise Forbidden(f"user #{customer_id} cannot view applications of order #{order_id}")
        if customer_id is not None:
            marked = await self.session.execute(
                update(m.order_applications)
                .where(
                    m.order_applications.order_id == order_id,
                    m.order_applications.is_viewed.is_(False),
                )
                .values(is_viewed=True)
                .execution_options(synchronize_session=False)
            )
            if marked.rowcount:
                _log.info("get_order_applications: order=%s marked_viewed=%s", order_id, marked.rowcount)
        result = await self.session.execute(
            select(m.order_applications)
            .where(m.order_applications.order_id == order_id)
            .order_by(m.order_applications.created_at.desc(), m.order_applications.id.desc())
            .execution_options(populate_existing=True)
        )
        applications = list(result.scalars().all())
        await self.session.commit()
        return applications

    async def get_my_applications(self, executor_id: int) -> list[m.order_applications]:
        result = await self.session.execute(
            select(m.order_applications)
            .where(m.order_applications.executor_id == executor_id)
            .order_by(m.order_applications.created_at.desc(), m.order_applications.id.desc())
        )
        return list(result.scalars().all())

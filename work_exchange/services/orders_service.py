"""
Сервис для работы с заказами.

Создание, поиск, просмотр, ручная смена статуса и завершение заказа.
Принятие/отклонение заявок живёт в applications_service.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from work_exchange.db import models as m
from work_exchange.infra.structured_logging import ArbitrationEvent, log_arbitration_event
from work_exchange.services import directory
from work_exchange.services.dto import OrdersFilter, OrderSpec, Page
from work_exchange.services.errors import (
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationError,
)
from work_exchange.services.geo import within_radius
from work_exchange.services.history import record_status_change
from work_exchange.services.order_state import transition
from work_exchange.services.ranking import URGENCY_WEIGHTS, DEFAULT_URGENCY_WEIGHT
from work_exchange.services.transaction import transactional

_log = logging.getLogger(__name__)

UTC = timezone.utc

TITLE_MAX_LEN = 200
ADDRESS_MAX_LEN = 500
MIN_RATING = 1
MAX_RATING = 5

COMPLETABLE_STATUSES = (m.OrderStatus.IN_PROGRESS, m.OrderStatus.WAITING_CONFIRMATION)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def validate_order_spec(spec: OrderSpec, now: datetime) -> None:
    """Raise ValidationError for an inconsistent order payload."""
    if not spec.title or not spec.title.strip():
        raise ValidationError("title is required")
    if len(spec.title) > TITLE_MAX_LEN:
        raise ValidationError(f"title must not exceed {TITLE_MAX_LEN} characters")
    if len(spec.address or "") > ADDRESS_MAX_LEN:
        raise ValidationError(f"address must not exceed {ADDRESS_MAX_LEN} characters")

    for label, value in (("budget_from", spec.budget_from), ("budget_to", spec.budget_to)):
        if value is not None and Decimal(str(value)) < 0:
            raise ValidationError(f"{label} must not be negative")
    if (
        spec.budget_from is not None
        and spec.budget_to is not None
        and Decimal(str(spec.budget_from)) > Decimal(str(spec.budget_to))
    ):
        raise ValidationError("budget_from must not exceed budget_to")

    if spec.preferred_start_date is not None and _aware(spec.preferred_start_date) < now:
        raise ValidationError("preferred start date must not be in the past")
    if spec.deadline is not None and _aware(spec.deadline) < now:
        raise ValidationError("deadline must not be in the past")

    if spec.location_lat is not None and not -90 <= spec.location_lat <= 90:
        raise ValidationError("latitude must be between -90 and 90")
    if spec.location_lng is not None and not -180 <= spec.location_lng <= 180:
        raise ValidationError("longitude must be between -180 and 180")
    if (spec.location_lat is None) != (spec.location_lng is None):
        raise ValidationError("location requires both latitude and longitude")


class OrdersService:
    """Сервис для работы с заказами."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------ reads

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

    @transactional("get_order")
    async def get_order(self, order_id: int, viewer_id: Optional[int] = None) -> m.orders:
        """Return the order; a view by anyone but the customer bumps views_count."""
        order = await self._load_order(order_id)
        if viewer_id is not None and viewer_id != order.customer_id:
            await self.session.execute(
                update(m.orders)
                .where(m.orders.id == order_id)
                .values(views_count=m.orders.views_count + 1)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            await self.session.refresh(order)
        return order

    async def list_orders(self, flt: Optional[OrdersFilter] = None) -> Page[m.orders]:
        """Filtered, paginated listing: most urgent first, then newest.

        Без customer_id показываются только опубликованные заказы.
        Гео-фильтр (lat/lng/radius_km) считается в Python, поэтому
        при нём пагинация делается после фильтрации.
        """
        flt = flt or OrdersFilter()
        page = max(flt.page, 1)
        limit = max(flt.limit, 1)

        conditions = []
        if flt.customer_id is not None:
            conditions.append(m.orders.customer_id == flt.customer_id)
        else:
            conditions.append(m.orders.is_published.is_(True))
        if flt.search:
            pattern = f"%{flt.search.strip()}%"
            conditions.append(or_(m.orders.title.ilike(pattern), m.orders.description.ilike(pattern)))
        if flt.category_id is not None:
            conditions.append(m.orders.category_id == flt.category_id)
        if flt.status is not None:
            conditions.append(m.orders.status == flt.status)
        if flt.urgency is not None:
            conditions.append(m.orders.urgency == flt.urgency)
        if flt.price_type is not None:
            conditions.append(m.orders.price_type == flt.price_type)
        if flt.min_budget is not None:
            conditions.append(
                or_(m.orders.budget_from >= flt.min_budget, m.orders.budget_to >= flt.min_budget)
            )
        if flt.max_budget is not None:
            conditions.append(
                or_(m.orders.budget_from <= flt.max_budget, m.orders.budget_to <= flt.max_budget)
            )

        urgency_rank = case(
            *[(m.orders.urgency == u, w) for u, w in URGENCY_WEIGHTS.items()],
            else_=DEFAULT_URGENCY_WEIGHT,
        )
        stmt = (
            select(m.orders)
            .where(and_(*conditions))
            .order_by(urgency_rank.desc(), m.orders.created_at.desc(), m.orders.id.desc())
        )

        geo = flt.lat is not None and flt.lng is not None
        if geo:
            stmt = stmt.where(m.orders.location_lat.is_not(None), m.orders.location_lng.is_not(None))
            rows = (await self.session.execute(stmt)).scalars().all()
            origin = (flt.lat, flt.lng)
            matched = [
                o for o in rows
                if within_radius(origin, (o.location_lat, o.location_lng), flt.radius_km)
            ]
            offset = (page - 1) * limit
            return Page(items=matched[offset: offset + limit], total=len(matched), page=page, limit=limit)

        count_stmt = select(func.count()).select_from(m.orders).where(and_(*conditions))
        total = (await self.session.execute(count_stmt)).scalar_one()
        rows = (
            await self.session.execute(stmt.offset((page - 1) * limit).limit(limit))
        ).scalars().all()
        return Page(items=list(rows), total=int(total), page=page, limit=limit)

    # ----------------------------------------------------------------- writes

    @transactional("create_order")
    async def create_order(self, customer_id: int, spec: OrderSpec) -> m.orders:
        now = datetime.now(UTC)
        validate_order_spec(spec, now)

        if not await directory.category_exists(self.session, spec.category_id):
            raise NotFound(f"category #{spec.category_id} not found or inactive")

        status = m.OrderStatus.OPEN if spec.publish else m.OrderStatus.DRAFT
        order = m.orders(
            customer_id=customer_id,
            category_id=spec.category_id,
            title=spec.title.strip(),
            description=spec.description or "",
            address=spec.address or "",
            price_type=spec.price_type,
            urgency=spec.urgency,
            budget_from=spec.budget_from,
            budget_to=spec.budget_to,
            preferred_start_date=spec.preferred_start_date,
            deadline=spec.deadline,
            location_lat=spec.location_lat,
            location_lng=spec.location_lng,
            status=status,
            is_published=bool(spec.publish),
            applications_count=0,
            views_count=0,
            version=1,
        )
        self.session.add(order)
        await self.session.flush()

        await record_status_change(
            self.session,
            order_id=order.id,
            from_status=None,
            to_status=status,
            actor_type=m.ActorType.CUSTOMER,
            changed_by_user_id=customer_id,
            reason="order_created",
        )
        await self.session.commit()
        await self.session.refresh(order)

        _log.info(
            "create_order: order=%s customer=%s status=%s category=%s",
            order.id, customer_id, status.value, spec.category_id,
        )
        return order

    @transactional("update_order_status")
    async def update_order_status(
        self,
        actor_id: int,
        order_id: int,
        new_status: m.OrderStatus,
        comment: Optional[str] = None,
    ) -> m.orders:
        """Caller-invoked status change validated by the transition table."""
        new_status = m.OrderStatus(new_status)
        order = await self._load_order(order_id)

        if actor_id == order.customer_id:
            actor = m.ActorType.CUSTOMER
        elif order.executor_id is not None and actor_id == order.executor_id:
            actor = m.ActorType.EXECUTOR
        else:
            raise Forbidden(f"user #{actor_id} cannot change status of order #{order_id}")

        current = order.status
        transition(current, new_status, actor)

        values: dict = {
            "status": new_status,
            "version": m.orders.version + 1,
            "updated_at": func.now(),
        }
        if new_status == m.OrderStatus.WAITING_CONFIRMATION:
            values["actual_end_date"] = datetime.now(UTC)
        if current == m.OrderStatus.DRAFT and new_status == m.OrderStatus.OPEN:
            values["is_published"] = True

        result = await self.session.execute(
            update(m.orders)
            .where(m.orders.id == order_id, m.orders.status == current)
            .values(**values)
            .returning(m.orders.id)
            .execution_options(synchronize_session=False)
        )
        if result.first() is None:
            _log.warning("update_order_status: order=%s status changed concurrently", order_id)
            raise Conflict(f"order #{order_id} status was changed by another request")

        await record_status_change(
            self.session,
            order_id=order_id,
            from_status=current,
            to_status=new_status,
            actor_type=actor,
            changed_by_user_id=actor_id,
            reason=comment or "status_updated",
        )
        await self.session.commit()
        await self.session.refresh(order)

        log_arbitration_event(
            ArbitrationEvent.STATUS_CHANGED,
            order_id=order_id,
            actor_id=actor_id,
            from_status=current,
            to_status=new_status,
            reason=comment,
        )
        return order

    @transactional("complete_order")
    async def complete_order(
        self,
        customer_id: int,
        order_id: int,
        rating: int | float | Decimal,
        review: str,
    ) -> m.orders:
        """Close the order with the customer's rating and update executor stats."""
        if rating is None or not MIN_RATING <= float(rating) <= MAX_RATING:
            raise ValidationError(f"rating must be between {MIN_RATING} and {MAX_RATING}")

        order = await self._load_order(order_id)
        if order.customer_id != customer_id:
            raise Forbidden(f"user #{customer_id} cannot complete order #{order_id}")
        current = order.status
        if current not in COMPLETABLE_STATUSES:
            raise InvalidState(f"order #{order_id} cannot be completed in status {current.value}")

        result = await self.session.execute(
            update(m.orders)
            .where(m.orders.id == order_id, m.orders.status == current)
            .values(
                status=m.OrderStatus.COMPLETED,
                actual_end_date=datetime.now(UTC),
                customer_rating=Decimal(str(rating)),
                customer_review=review,
                version=m.orders.version + 1,
                updated_at=func.now(),
            )
            .returning(m.orders.id)
            .execution_options(synchronize_session=False)
        )
        if result.first() is None:
            raise Conflict(f"order #{order_id} status was changed by another request")

        if order.executor_id is not None:
            await directory.record_completed_order(self.session, order.executor_id, rating)

        await record_status_change(
            self.session,
            order_id=order_id,
            from_status=current,
            to_status=m.OrderStatus.COMPLETED,
            actor_type=m.ActorType.CUSTOMER,
            changed_by_user_id=customer_id,
            reason="completed_with_review",
            context={"rating": float(rating)},
        )
        await self.session.commit()
        await self.session.refresh(order)

        log_arbitration_event(
            ArbitrationEvent.ORDER_COMPLETED,
            order_id=order_id,
            actor_id=customer_id,
            executor_id=order.executor_id,
            from_status=current,
            to_status=m.OrderStatus.COMPLETED,
            details={"rating": float(rating)},
        )
        return order

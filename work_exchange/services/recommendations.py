"""
Рекомендации и поиск рядом.

Запросы к БД здесь только фильтрующие (статус, публикация, владелец,
уже поданные заявки); расстояния и скоринг считаются в Python через
geo и ranking. Ничего не пишет в БД и не берёт блокировок.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from work_exchange.config import settings
from work_exchange.db import models as m
from work_exchange.services import directory
from work_exchange.services.errors import NotFound
from work_exchange.services.geo import distance_km, has_coordinates, within_radius
from work_exchange.services.ranking import preferred_categories, rank_executors, rank_orders

logger = logging.getLogger(__name__)


def _radius(profile: m.executor_profiles) -> float:
    # 0 км - допустимый радиус "только эта точка", дефолт только для NULL
    if profile.work_radius_km is None:
        return settings.default_work_radius_km
    return profile.work_radius_km


class RecommendationService:
    """Read-only ranking of orders for executors and executors for orders."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def applied_category_ids(self, executor_id: int) -> list[int]:
        """One category id per application the executor has ever submitted."""
        result = await self.session.execute(
            select(m.orders.category_id)
            .join(m.order_applications, m.order_applications.order_id == m.orders.id)
            .where(m.order_applications.executor_id == executor_id)
        )
        return [row[0] for row in result.all()]

    async def get_recommended_orders(self, executor_id: int, limit: Optional[int] = None) -> list[m.orders]:
        limit = settings.recommendations_limit if limit is None else limit
        profile = await directory.get_executor_profile(self.session, executor_id)

        preferred = preferred_categories(
            await self.applied_category_ids(executor_id),
            top=settings.preferred_categories_top,
        )

        applied = select(m.order_applications.order_id).where(
            m.order_applications.executor_id == executor_id
        )
        result = await self.session.execute(
            select(m.orders).where(
                m.orders.status == m.OrderStatus.OPEN,
                m.orders.is_published.is_(True),
                m.orders.customer_id != executor_id,
                m.orders.id.not_in(applied),
            )
        )
        candidates = list(result.scalars().all())

        origin = (profile.location_lat, profile.location_lng)
        if has_coordinates(origin):
            radius = _radius(profile)
            candidates = [
                o for o in candidates
                if within_radius(origin, (o.location_lat, o.location_lng), radius)
            ]

        ranked = rank_orders(candidates, preferred, limit)
        logger.info(
            "[recommend] executor=%s candidates=%s preferred=%s returned=%s",
            executor_id, len(candidates), preferred, len(ranked),
        )
        return ranked

    async def find_nearby_orders(
        self,
        lat: float,
        lng: float,
        radius_km: float = 10.0,
        limit: Optional[int] = None,
    ) -> list[m.orders]:
        """Open published orders within *radius_km*, nearest first."""
        limit = settings.nearby_orders_limit if limit is None else limit
        result = await self.session.execute(
            select(m.orders).where(
                m.orders.status == m.OrderStatus.OPEN,
                m.orders.is_published.is_(True),
                m.orders.location_lat.is_not(None),
                m.orders.location_lng.is_not(None),
            )
        )
        origin = (lat, lng)
        matched = []
        for order in result.scalars().all():
            d = distance_km(origin, (order.location_lat, order.location_lng))
            if d is not None and d <= radius_km:
                matched.append((d, order))
        matched.sort(key=lambda pair: (pair[0], -(pair[1].id or 0)))
        return [order for _, order in matched[: max(limit, 0)]]

    async def find_nearby_executors(
        self,
        lat: float,
        lng: float,
        radius_km: float = 10.0,
    ) -> list[m.executor_profiles]:
        """Available executors within *radius_km*: premium first, then by rating."""
        result = await self.session.execute(
            select(m.executor_profiles).where(
                m.executor_profiles.is_available.is_(True),
                m.executor_profiles.location_lat.is_not(None),
                m.executor_profiles.location_lng.is_not(None),
            )
        )
        origin = (lat, lng)
        candidates = []
        for profile in result.scalars().all():
            d = distance_km(origin, (profile.location_lat, profile.location_lng))
            if d is not None and d <= radius_km:
                candidates.append((profile, d))
        return rank_executors(candidates)

    async def recommend_executors_for_order(
        self,
        order_id: int,
        limit: Optional[int] = None,
    ) -> list[m.executor_profiles]:
        """Executors whose work radius covers the order and who have not applied yet."""
        limit = settings.recommendations_limit if limit is None else limit
        order = (
            await self.session.execute(select(m.orders).where(m.orders.id == order_id))
        ).scalar_one_or_none()
        if order is None:
            raise NotFound(f"order #{order_id} not found")

        applied = select(m.order_applications.executor_id).where(
            m.order_applications.order_id == order_id
        )
        result = await self.session.execute(
            select(m.executor_profiles).where(
                m.executor_profiles.is_available.is_(True),
                m.executor_profiles.user_id != order.customer_id,
                m.executor_profiles.user_id.not_in(applied),
            )
        )
        point = (order.location_lat, order.location_lng)
        candidates = []
        for profile in result.scalars().all():
            home = (profile.location_lat, profile.location_lng)
            if within_radius(home, point, _radius(profile)):
                candidates.append((profile, distance_km(home, point)))
        return rank_executors(candidates, limit)

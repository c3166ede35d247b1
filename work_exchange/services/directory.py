"""
Внешние справочники, которые ядро только читает: категории услуг
и профили исполнителей.

Единственная запись - обновление статистики исполнителя при завершении
заказа (рейтинг как скользящее среднее, счётчики).
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from work_exchange.db import models as m
from work_exchange.services.errors import NotFound

logger = logging.getLogger(__name__)


async def category_exists(session: AsyncSession, category_id: int) -> bool:
    """True if the category exists and is active."""
    result = await session.execute(
        select(m.service_categories.id).where(
            m.service_categories.id == category_id,
            m.service_categories.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none() is not None


async def get_executor_profile(session: AsyncSession, user_id: int) -> m.executor_profiles:
    result = await session.execute(
        select(m.executor_profiles).where(m.executor_profiles.user_id == user_id)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFound(f"executor profile for user #{user_id} not found")
    return profile


async def record_completed_order(
    session: AsyncSession,
    user_id: int,
    rating: Decimal | float | int,
) -> None:
    """Add one completed order and fold *rating* into the running average.

    Не коммитит: вызывается внутри транзакции завершения заказа.
    """
    profile = await get_executor_profile(session, user_id)
    reviews = profile.reviews_count or 0
    new_rating = ((profile.rating or 0.0) * reviews + float(rating)) / (reviews + 1)
    await session.execute(
        update(m.executor_profiles)
        .where(m.executor_profiles.id == profile.id)
        .values(
            completed_orders=m.executor_profiles.completed_orders + 1,
            reviews_count=m.executor_profiles.reviews_count + 1,
            rating=round(new_rating, 2),
        )
    )
    logger.info(
        "executor_stats: user=%s completed+1 rating=%.2f reviews=%s",
        user_id, new_rating, reviews + 1,
    )

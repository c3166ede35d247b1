"""
Фикстуры для тестов сервисов заказов и заявок.

По умолчанию поднимается файловая SQLite (aiosqlite) во временной папке,
чтобы несколько сессий видели одну и ту же БД. Для прогона на PostgreSQL
задайте TEST_DATABASE_URL=postgresql+asyncpg://...
"""
from __future__ import annotations

import os
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from work_exchange.db import models as m
from work_exchange.db.base import metadata
from work_exchange.db.session import make_engine, make_sessionmaker
from work_exchange.infra.logging_utils import setup_logging


def pytest_configure(config):
    setup_logging(os.getenv("LOG_LEVEL", "DEBUG"))
    config.addinivalue_line("markers", "race: тесты конкурентного принятия заявок")


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'work_exchange.db'}"
    engine = make_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as s:
        yield s


# ============================================================================
# FACTORIES
# ============================================================================

@pytest.fixture
def make_category(session: AsyncSession) -> Callable[..., Awaitable[m.service_categories]]:
    async def factory(name: str = "Ремонт", is_active: bool = True) -> m.service_categories:
        category = m.service_categories(name=name, is_active=is_active)
        session.add(category)
        await session.commit()
        await session.refresh(category)
        return category

    return factory


@pytest.fixture
def make_profile(session: AsyncSession) -> Callable[..., Awaitable[m.executor_profiles]]:
    async def factory(
        user_id: int,
        *,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        radius_km: Optional[float] = None,
        rating: float = 0.0,
        completed_orders: int = 0,
        is_premium: bool = False,
        is_available: bool = True,
    ) -> m.executor_profiles:
        profile = m.executor_profiles(
            user_id=user_id,
            location_lat=lat,
            location_lng=lng,
            work_radius_km=radius_km,
            rating=rating,
            reviews_count=0,
            completed_orders=completed_orders,
            is_premium=is_premium,
            is_available=is_available,
        )
        session.add(profile)
        await session.commit()
        await session.refresh(profile)
        return profile

    return factory


@pytest.fixture
def make_order(session: AsyncSession) -> Callable[..., Awaitable[m.orders]]:
    """Вставка заказа напрямую, в обход OrdersService (нужный статус сразу)."""

    async def factory(
        customer_id: int,
        category_id: int,
        *,
        title: str = "Покраска стен",
        status: m.OrderStatus = m.OrderStatus.OPEN,
        urgency: m.OrderUrgency = m.OrderUrgency.MEDIUM,
        budget_from: Optional[Decimal] = None,
        budget_to: Optional[Decimal] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        executor_id: Optional[int] = None,
        is_published: Optional[bool] = None,
        created_at: Optional[datetime] = None,
        **extra: Any,
    ) -> m.orders:
        order = m.orders(
            customer_id=customer_id,
            category_id=category_id,
            title=title,
            status=status,
            urgency=urgency,
            budget_from=budget_from,
            budget_to=budget_to,
            location_lat=lat,
            location_lng=lng,
            executor_id=executor_id,
            is_published=status != m.OrderStatus.DRAFT if is_published is None else is_published,
            applications_count=0,
            views_count=0,
            version=1,
            **extra,
        )
        if created_at is not None:
            order.created_at = created_at
        session.add(order)
        await session.commit()
        await session.refresh(order)
        return order

    return factory

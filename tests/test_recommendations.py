"""
Тесты рекомендаций: заказы для исполнителя и исполнители для заказа.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from work_exchange.db import models as m
from work_exchange.services.applications_service import ApplicationsService
from work_exchange.services.errors import NotFound
from work_exchange.services.recommendations import RecommendationService

CUSTOMER = 100
EXECUTOR = 201

TASHKENT = (41.3111, 69.2797)
KM_PER_DEG_LAT = 111.19492664455873


def north(km: float) -> tuple[float, float]:
    return (TASHKENT[0] + km / KM_PER_DEG_LAT, TASHKENT[1])


@pytest.fixture
def service(session) -> RecommendationService:
    return RecommendationService(session)


@pytest_asyncio.fixture
async def categories(make_category):
    return [await make_category(name) for name in ("Уборка", "Ремонт", "Электрика")]


@pytest.mark.asyncio
async def test_recommended_orders_respect_work_radius(service, categories, make_profile, make_order):
    """Исполнитель с радиусом 10 км: заказ в 8 км виден, в 12 км - нет."""
    await make_profile(EXECUTOR, lat=TASHKENT[0], lng=TASHKENT[1], radius_km=10)
    near = await make_order(CUSTOMER, categories[0].id, lat=north(8)[0], lng=north(8)[1])
    await make_order(CUSTOMER, categories[0].id, lat=north(12)[0], lng=north(12)[1])
    no_location = await make_order(CUSTOMER, categories[0].id)

    recommended = await service.get_recommended_orders(EXECUTOR)

    assert {o.id for o in recommended} == {near.id, no_location.id}


@pytest.mark.asyncio
async def test_recommended_orders_exclude_own_applied_and_closed(
    session, service, categories, make_profile, make_order
):
    await make_profile(EXECUTOR)
    applied = await make_order(CUSTOMER, categories[0].id)
    await make_order(EXECUTOR, categories[0].id)  # свой заказ
    await make_order(CUSTOMER, categories[0].id, status=m.OrderStatus.CANCELLED)
    await make_order(CUSTOMER, categories[0].id, status=m.OrderStatus.DRAFT)
    visible = await make_order(CUSTOMER, categories[0].id)

    await ApplicationsService(session).create_application(EXECUTOR, applied.id)

    recommended = await service.get_recommended_orders(EXECUTOR)

    assert [o.id for o in recommended] == [visible.id]


@pytest.mark.asyncio
async def test_category_affinity_reorders_recommendations(
    session, service, categories, make_profile, make_order
):
    """История заявок в категории даёт +10 и поднимает заказ выше более срочного."""
    cleaning, repair, _ = categories
    await make_profile(EXECUTOR)
    history_order = await make_order(CUSTOMER, repair.id)
    await ApplicationsService(session).create_application(EXECUTOR, history_order.id)

    now = datetime.now(timezone.utc)
    urgent = await make_order(
        CUSTOMER, cleaning.id, urgency=m.OrderUrgency.URGENT, created_at=now - timedelta(hours=1)
    )
    preferred = await make_order(CUSTOMER, repair.id, urgency=m.OrderUrgency.MEDIUM, created_at=now)
    high = await make_order(CUSTOMER, cleaning.id, urgency=m.OrderUrgency.HIGH, created_at=now)

    recommended = await service.get_recommended_orders(EXECUTOR)

    # urgent = 20+1, preferred = 10+1+10, high = 15+1; при равенстве новее выше
    assert [o.id for o in recommended] == [preferred.id, urgent.id, high.id]


@pytest.mark.asyncio
async def test_recommended_orders_budget_and_limit(service, categories, make_profile, make_order):
    await make_profile(EXECUTOR)
    cheap = await make_order(CUSTOMER, categories[0].id, budget_from=Decimal("50000"))
    rich = await make_order(CUSTOMER, categories[0].id, budget_from=Decimal("600000"))
    await make_order(CUSTOMER, categories[0].id, budget_from=Decimal("250000"))

    top = await service.get_recommended_orders(EXECUTOR, limit=1)
    assert [o.id for o in top] == [rich.id]

    everything = await service.get_recommended_orders(EXECUTOR, limit=10)
    assert everything[-1].id == cheap.id


@pytest.mark.asyncio
async def test_recommendations_require_profile(service):
    with pytest.raises(NotFound):
        await service.get_recommended_orders(EXECUTOR)


@pytest.mark.asyncio
async def test_find_nearby_orders_nearest_first(service, categories, make_order):
    far = await make_order(CUSTOMER, categories[0].id, lat=north(6)[0], lng=north(6)[1])
    close = await make_order(CUSTOMER, categories[0].id, lat=north(1)[0], lng=north(1)[1])
    await make_order(CUSTOMER, categories[0].id, lat=north(15)[0], lng=north(15)[1])
    await make_order(CUSTOMER, categories[0].id)

    nearby = await service.find_nearby_orders(*TASHKENT, radius_km=10)

    assert [o.id for o in nearby] == [close.id, far.id]
    assert await service.find_nearby_orders(*TASHKENT, radius_km=10, limit=1) == [close]


@pytest.mark.asyncio
async def test_find_nearby_executors(service, make_profile):
    regular = await make_profile(301, lat=north(2)[0], lng=north(2)[1], rating=4.9)
    premium = await make_profile(302, lat=north(5)[0], lng=north(5)[1], rating=4.1, is_premium=True)
    await make_profile(303, lat=north(20)[0], lng=north(20)[1], rating=5.0)
    await make_profile(304, lat=north(1)[0], lng=north(1)[1], is_available=False)
    await make_profile(305)

    found = await service.find_nearby_executors(*TASHKENT, radius_km=10)

    assert [p.user_id for p in found] == [premium.user_id, regular.user_id]


@pytest.mark.asyncio
async def test_recommend_executors_for_order(session, service, categories, make_profile, make_order):
    order = await make_order(CUSTOMER, categories[0].id, lat=TASHKENT[0], lng=TASHKENT[1])
    wide = await make_profile(401, lat=north(15)[0], lng=north(15)[1], radius_km=20, rating=4.0)
    await make_profile(402, lat=north(15)[0], lng=north(15)[1], radius_km=10, rating=5.0)
    best = await make_profile(403, lat=north(3)[0], lng=north(3)[1], rating=4.8)
    applied = await make_profile(404, lat=TASHKENT[0], lng=TASHKENT[1], rating=5.0)
    await make_profile(CUSTOMER, lat=TASHKENT[0], lng=TASHKENT[1], rating=5.0)
    anywhere = await make_profile(405, rating=3.0)

    await ApplicationsService(session).create_application(applied.user_id, order.id)

    candidates = await service.recommend_executors_for_order(order.id)

    assert [p.user_id for p in candidates] == [best.user_id, wide.user_id, anywhere.user_id]

    with pytest.raises(NotFound):
        await service.recommend_executors_for_order(987654)


@pytest.mark.asyncio
async def test_zero_work_radius_is_not_replaced_by_default(service, categories, make_profile, make_order):
    """Радиус 0 км: виден только заказ в той же точке, дефолтные 10 км не подставляются."""
    await make_profile(EXECUTOR, lat=TASHKENT[0], lng=TASHKENT[1], radius_km=0.0)
    same_point = await make_order(CUSTOMER, categories[0].id, lat=TASHKENT[0], lng=TASHKENT[1])
    await make_order(CUSTOMER, categories[0].id, lat=north(5)[0], lng=north(5)[1])

    recommended = await service.get_recommended_orders(EXECUTOR)

    assert [o.id for o in recommended] == [same_point.id]


@pytest.mark.asyncio
async def test_executor_with_zero_radius_covers_only_own_point(service, categories, make_profile, make_order):
    order = await make_order(CUSTOMER, categories[0].id, lat=TASHKENT[0], lng=TASHKENT[1])
    await make_profile(401, lat=north(5)[0], lng=north(5)[1], radius_km=0.0, rating=5.0)
    on_site = await make_profile(402, lat=TASHKENT[0], lng=TASHKENT[1], radius_km=0.0, rating=3.0)

    candidates = await service.recommend_executors_for_order(order.id)

    assert [p.user_id for p in candidates] == [on_site.user_id]

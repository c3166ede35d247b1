"""
Гонка при параллельном принятии заявок одного заказа.

СЦЕНАРИЙ:
- на заказ подали заявки несколько исполнителей
- заказчик (или два его клиента) одновременно принимают разные заявки
- каждая операция работает в своей сессии

ОЖИДАНИЕ:
- ровно одна операция успешна, остальные получают Conflict
- у заказа ровно один исполнитель и ровно одна ACCEPTED-заявка
- остальные заявки отклонены с причиной "other executor selected"
"""
from __future__ import annotations

import asyncio
import logging

import pytest
from sqlalchemy import select

from work_exchange.db import models as m
from work_exchange.services.applications_service import OTHER_EXECUTOR_SELECTED, ApplicationsService
from work_exchange.services.errors import Conflict

_log = logging.getLogger(__name__)

CUSTOMER = 500


class GatedApplicationsService(ApplicationsService):
    """Останавливает accept после чтения состояния, пока все участники не дочитают."""

    def __init__(self, session, barrier: "Barrier"):
        super().__init__(session)
        self.barrier = barrier

    async def _load_application(self, application_id):
        loaded = await super()._load_application(application_id)
        await self.barrier.wait()
        return loaded


class Barrier:
    def __init__(self, parties: int):
        self.parties = parties
        self.arrived = 0
        self.event = asyncio.Event()

    async def wait(self) -> None:
        self.arrived += 1
        if self.arrived >= self.parties:
            self.event.set()
        await asyncio.wait_for(self.event.wait(), timeout=10)


async def _prepare(session, make_category, make_profile, make_order, executors):
    category = await make_category()
    for user_id in executors:
        await make_profile(user_id)
    order = await make_order(CUSTOMER, category.id)
    service = ApplicationsService(session)
    applications = [await service.create_application(user_id, order.id) for user_id in executors]
    return order, applications


async def _final_state(session_factory, order_id):
    async with session_factory() as s:
        order = (await s.execute(select(m.orders).where(m.orders.id == order_id))).scalar_one()
        apps = (
            await s.execute(select(m.order_applications).where(m.order_applications.order_id == order_id))
        ).scalars().all()
        return order, list(apps)


async def _accept_in_own_session(session_factory, application_id, barrier=None):
    async with session_factory() as s:
        service = GatedApplicationsService(s, barrier) if barrier else ApplicationsService(s)
        return await service.accept_application(CUSTOMER, application_id)


@pytest.mark.race
@pytest.mark.asyncio
async def test_two_accepts_after_both_read_open_order(
    session, session_factory, make_category, make_profile, make_order
):
    """Обе операции прочитали заказ как OPEN до записи: побеждает только одна."""
    order, (app_a, app_b) = await _prepare(session, make_category, make_profile, make_order, [601, 602])
    barrier = Barrier(2)

    results = await asyncio.gather(
        _accept_in_own_session(session_factory, app_a.id, barrier),
        _accept_in_own_session(session_factory, app_b.id, barrier),
        return_exceptions=True,
    )
    _log.info("race results: %s", results)

    successes = [r for r in results if isinstance(r, m.orders)]
    conflicts = [r for r in results if isinstance(r, Conflict)]
    assert len(successes) == 1
    assert len(conflicts) == 1

    final_order, apps = await _final_state(session_factory, order.id)
    accepted = [a for a in apps if a.status == m.ApplicationStatus.ACCEPTED]
    assert len(accepted) == 1
    assert final_order.status == m.OrderStatus.IN_PROGRESS
    assert final_order.executor_id == accepted[0].executor_id == successes[0].executor_id

    loser = next(a for a in apps if a.id != accepted[0].id)
    assert loser.status == m.ApplicationStatus.REJECTED
    assert loser.rejection_reason == OTHER_EXECUTOR_SELECTED


@pytest.mark.race
@pytest.mark.asyncio
async def test_many_parallel_accepts_single_winner(
    session, session_factory, make_category, make_profile, make_order
):
    """5 заявок, 5 одновременных попыток принять разные заявки."""
    executors = [701, 702, 703, 704, 705]
    order, applications = await _prepare(session, make_category, make_profile, make_order, executors)

    results = await asyncio.gather(
        *[_accept_in_own_session(session_factory, a.id) for a in applications],
        return_exceptions=True,
    )

    successes = [r for r in results if isinstance(r, m.orders)]
    failures = [r for r in results if not isinstance(r, m.orders)]
    assert len(successes) == 1
    assert all(isinstance(f, Conflict) for f in failures), failures

    final_order, apps = await _final_state(session_factory, order.id)
    statuses = sorted(a.status.value for a in apps)
    assert statuses == ["ACCEPTED", "REJECTED", "REJECTED", "REJECTED", "REJECTED"]
    assert final_order.executor_id == successes[0].executor_id
    assert final_order.version == 2


@pytest.mark.race
@pytest.mark.asyncio
async def test_repeat_accept_of_same_application(
    session, session_factory, make_category, make_profile, make_order
):
    """Двойной клик по "Принять": вторая попытка - Conflict, состояние не меняется."""
    order, (app_a,) = await _prepare(session, make_category, make_profile, make_order, [801])
    barrier = Barrier(2)

    results = await asyncio.gather(
        _accept_in_own_session(session_factory, app_a.id, barrier),
        _accept_in_own_session(session_factory, app_a.id, barrier),
        return_exceptions=True,
    )

    assert sum(isinstance(r, m.orders) for r in results) == 1
    assert sum(isinstance(r, Conflict) for r in results) == 1

    final_order, apps = await _final_state(session_factory, order.id)
    assert final_order.executor_id == 801
    assert [a.status for a in apps] == [m.ApplicationStatus.ACCEPTED]

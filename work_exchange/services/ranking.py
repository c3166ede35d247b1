"""
Скоринг рекомендаций заказов для исполнителя.

Чистые функции без доступа к БД: на вход подаются уже отфильтрованные
заказы и история заявок исполнителя, на выходе - отсортированный список.

Score = вес срочности + вес бюджета + бонус за любимую категорию.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from work_exchange.db.models import OrderUrgency

__all__ = [
    "URGENCY_WEIGHTS",
    "CATEGORY_BONUS",
    "ScoredOrder",
    "urgency_weight",
    "budget_weight",
    "category_bonus",
    "score",
    "preferred_categories",
    "score_orders",
    "rank_orders",
    "rank_executors",
]

URGENCY_WEIGHTS = {
    OrderUrgency.URGENT: 20,
    OrderUrgency.HIGH: 15,
    OrderUrgency.MEDIUM: 10,
}
DEFAULT_URGENCY_WEIGHT = 5

BUDGET_HIGH_THRESHOLD = Decimal("500000")
BUDGET_MID_THRESHOLD = Decimal("200000")
BUDGET_HIGH_WEIGHT = 10
BUDGET_MID_WEIGHT = 5
BUDGET_LOW_WEIGHT = 1

CATEGORY_BONUS = 10
DEFAULT_TOP_CATEGORIES = 5


@dataclass(slots=True, frozen=True)
class ScoredOrder:
    order: Any
    score: int
    urgency_weight: int
    budget_weight: int
    category_bonus: int


def urgency_weight(urgency: OrderUrgency | str | None) -> int:
    if urgency is None:
        return DEFAULT_URGENCY_WEIGHT
    try:
        key = OrderUrgency(getattr(urgency, "value", urgency))
    except ValueError:
        return DEFAULT_URGENCY_WEIGHT
    return URGENCY_WEIGHTS.get(key, DEFAULT_URGENCY_WEIGHT)


def budget_weight(budget_from: Decimal | float | None, budget_to: Decimal | float | None) -> int:
    """Budget tier; budget_from is preferred, budget_to is the fallback."""
    value = budget_from if budget_from is not None else budget_to
    if value is None:
        return BUDGET_LOW_WEIGHT
    amount = Decimal(str(value))
    if amount >= BUDGET_HIGH_THRESHOLD:
        return BUDGET_HIGH_WEIGHT
    if amount >= BUDGET_MID_THRESHOLD:
        return BUDGET_MID_WEIGHT
    return BUDGET_LOW_WEIGHT


def category_bonus(category_id: Optional[int], preferred: Iterable[int]) -> int:
    if category_id is None:
        return 0
    return CATEGORY_BONUS if category_id in set(preferred) else 0


def score(order: Any, preferred: Iterable[int] = ()) -> int:
    return (
        urgency_weight(order.urgency)
        + budget_weight(order.budget_from, order.budget_to)
        + category_bonus(order.category_id, preferred)
    )


def preferred_categories(
    applied_category_ids: Iterable[int],
    top: int = DEFAULT_TOP_CATEGORIES,
) -> list[int]:
    """Top categories by number of the executor's applications.

    Каждый элемент входа - category_id заказа, на который исполнитель
    подавал заявку (по одному элементу на заявку). Сортировка: по количеству
    заявок по убыванию, при равенстве - по id категории по возрастанию.
    """
    counts = Counter(cid for cid in applied_category_ids if cid is not None)
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [cid for cid, _ in ordered[: max(top, 0)]]


def _timestamp(value: Optional[datetime]) -> float:
    if value is None:
        return float("-inf")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def score_orders(orders: Iterable[Any], preferred: Iterable[int] = ()) -> list[ScoredOrder]:
    """Score and sort: score desc, then newest first."""
    preferred_set = set(preferred)
    scored = []
    for order in orders:
        u = urgency_weight(order.urgency)
        b = budget_weight(order.budget_from, order.budget_to)
        c = category_bonus(order.category_id, preferred_set)
        scored.append(
            ScoredOrder(order=order, score=u + b + c, urgency_weight=u, budget_weight=b, category_bonus=c)
        )
    scored.sort(
        key=lambda s: (s.score, _timestamp(s.order.created_at), s.order.id or 0),
        reverse=True,
    )
    return scored


def rank_orders(orders: Iterable[Any], preferred: Iterable[int] = (), limit: int = 10) -> list[Any]:
    if limit <= 0:
        return []
    return [s.order for s in score_orders(orders, preferred)[:limit]]


def rank_executors(
    candidates: Sequence[tuple[Any, Optional[float]]],
    limit: Optional[int] = None,
) -> list[Any]:
    """Sort (profile, distance_km) pairs for an order.

    Premium first, then rating, then completed orders, then nearest.
    Без бонуса за категорию: у заказа нет истории заявок.
    """
    ordered = sorted(
        candidates,
        key=lambda pair: (
            not pair[0].is_premium,
            -(pair[0].rating or 0.0),
            -(pair[0].completed_orders or 0),
            pair[1] if pair[1] is not None else float("inf"),
            pair[0].id or 0,
        ),
    )
    profiles = [profile for profile, _ in ordered]
    return profiles if limit is None else profiles[: max(limit, 0)]

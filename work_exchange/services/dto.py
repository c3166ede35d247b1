from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Generic, Optional, Sequence, TypeVar

from work_exchange.db.models import OrderPriceType, OrderStatus, OrderUrgency

T = TypeVar("T")


@dataclass(slots=True)
class OrderSpec:
    """Payload for creating an order."""
    category_id: int
    title: str
    description: str = ""
    address: str = ""
    price_type: OrderPriceType = OrderPriceType.NEGOTIABLE
    urgency: OrderUrgency = OrderUrgency.MEDIUM
    budget_from: Optional[Decimal] = None
    budget_to: Optional[Decimal] = None
    preferred_start_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    publish: bool = True


@dataclass(slots=True)
class ApplicationBid:
    """Executor's bid on an order."""
    message: str = ""
    proposed_price: Optional[Decimal] = None
    proposed_duration_days: Optional[int] = None
    available_from: Optional[datetime] = None


@dataclass(slots=True)
class OrdersFilter:
    page: int = 1
    limit: int = 10
    customer_id: Optional[int] = None
    search: Optional[str] = None
    category_id: Optional[int] = None
    status: Optional[OrderStatus] = None
    urgency: Optional[OrderUrgency] = None
    price_type: Optional[OrderPriceType] = None
    min_budget: Optional[Decimal] = None
    max_budget: Optional[Decimal] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius_km: float = 10.0


@dataclass(slots=True)
class Page(Generic[T]):
    items: Sequence[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(self.total / self.limit)

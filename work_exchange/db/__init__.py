from .base import Base, metadata
from .models import (
    ActorType,
    ApplicationStatus,
    OrderPriceType,
    OrderStatus,
    OrderUrgency,
)

__all__ = [
    "Base",
    "metadata",
    "ActorType",
    "ApplicationStatus",
    "OrderPriceType",
    "OrderStatus",
    "OrderUrgency",
]

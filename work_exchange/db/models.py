from __future__ import annotations
import enum
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, metadata

__all__ = [
    "metadata",
    "OrderStatus",
    "OrderUrgency",
    "OrderPriceType",
    "ApplicationStatus",
    "ActorType",
    "service_categories",
    "executor_profiles",
    "orders",
    "order_applications",
    "order_status_history",
]

# JSONB на PostgreSQL, обычный JSON на остальных диалектах (тесты на SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# ===== Enums =====


class OrderStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_CONFIRMATION = "WAITING_CONFIRMATION"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"


class OrderUrgency(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class OrderPriceType(str, enum.Enum):
    FIXED = "FIXED"
    HOURLY = "HOURLY"
    NEGOTIABLE = "NEGOTIABLE"


class ApplicationStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class ActorType(str, enum.Enum):
    """Who changed the order status."""
    CUSTOMER = "CUSTOMER"
    EXECUTOR = "EXECUTOR"
    SYSTEM = "SYSTEM"


# ===== Collaborator read models =====


class service_categories(Base):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class executor_profiles(Base):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)
    location_lat: Mapped[Optional[float]] = mapped_column(Float(asdecimal=False))
    location_lng: Mapped[Optional[float]] = mapped_column(Float(asdecimal=False))
    work_radius_km: Mapped[Optional[float]] = mapped_column(Float(asdecimal=False))
    rating: Mapped[float] = mapped_column(
        Float(asdecimal=False), nullable=False, default=0.0, server_default="0"
    )
    reviews_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    completed_orders: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    is_available: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    is_premium: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_executor_profiles__available_premium", "is_available", "is_premium"),
    )


# ===== Orders =====


class orders(Base):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # user_id исполнителя, заполняется только при принятии заявки
    executor_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("service_categories.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")

    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"),
        nullable=False,
        default=OrderStatus.DRAFT,
        server_default="DRAFT",
        index=True,
    )
    urgency: Mapped[OrderUrgency] = mapped_column(
        Enum(OrderUrgency, name="order_urgency"),
        nullable=False,
        default=OrderUrgency.MEDIUM,
        server_default="MEDIUM",
    )
    price_type: Mapped[OrderPriceType] = mapped_column(
        Enum(OrderPriceType, name="order_price_type"),
        nullable=False,
        default=OrderPriceType.NEGOTIABLE,
        server_default="NEGOTIABLE",
    )

    budget_from: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    budget_to: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    agreed_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    address: Mapped[str] = mapped_column(String(500), nullable=False, default="", server_default="")
    location_lat: Mapped[Optional[float]] = mapped_column(Float(asdecimal=False))
    location_lng: Mapped[Optional[float]] = mapped_column(Float(asdecimal=False))

    is_published: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    applications_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    views_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    customer_rating: Mapped[Optional[Decimal]] = mapped_column(Numeric(2, 1))
    customer_review: Mapped[Optional[str]] = mapped_column(Text)

    preferred_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    actual_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    actual_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default="1"
    )  # optimistic lock

    @property
    def has_location(self) -> bool:
        return self.location_lat is not None and self.location_lng is not None

    @property
    def can_receive_applications(self) -> bool:
        return self.status == OrderStatus.OPEN and bool(self.is_published)

    __table_args__ = (
        CheckConstraint(
            "budget_from IS NULL OR budget_to IS NULL OR budget_from <= budget_to",
            name="budget_range",
        ),
        Index("ix_orders__status_published", "status", "is_published"),
        Index("ix_orders__customer_status", "customer_id", "status"),
        Index("ix_orders__category_status", "category_id", "status"),
    )


class order_applications(Base):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    executor_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"),
        nullable=False,
        default=ApplicationStatus.PENDING,
        server_default="PENDING",
        index=True,
    )
    proposed_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    proposed_duration_days: Mapped[Optional[int]] = mapped_column(Integer)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    available_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    # заказчик открывал список заявок (get_order_applications с customer_id)
    is_viewed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        # Одна заявка на пару (заказ, исполнитель) в любом статусе
        UniqueConstraint("order_id", "executor_id", name="uq_order_applications__order_executor"),
        Index("ix_order_applications__order_status", "order_id", "status"),
        Index("ix_order_applications__executor_status", "executor_id", "status"),
        # Только одна принятая заявка на заказ
        Index(
            "uix_order_applications__order_accepted_once",
            "order_id",
            unique=True,
            postgresql_where=text("status = 'ACCEPTED'"),
            sqlite_where=text("status = 'ACCEPTED'"),
        ),
    )


class order_status_history(Base):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[Optional[OrderStatus]] = mapped_column(
        Enum(OrderStatus, name="order_status"), nullable=True
    )
    to_status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"), nullable=False
    )
    reason: Mapped[Optional[str]] = mapped_column(Text)
    changed_by_user_id: Mapped[Optional[int]] = mapped_column(Integer)
    actor_type: Mapped[ActorType] = mapped_column(
        Enum(ActorType, name="actor_type"),
        nullable=False,
        default=ActorType.SYSTEM,
        index=True,
    )
    context: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )

    __table_args__ = (
        Index("ix_order_status_history__order_created_at", "order_id", "created_at"),
    )

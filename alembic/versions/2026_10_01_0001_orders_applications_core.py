"""Orders, applications, status history and collaborator read tables

Revision ID: 2026_10_01_0001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "2026_10_01_0001"
down_revision = None
branch_labels = None
depends_on = None

ORDER_STATUS = postgresql.ENUM(
    "DRAFT", "OPEN", "IN_PROGRESS", "WAITING_CONFIRMATION", "COMPLETED", "CANCELLED", "DISPUTED",
    name="order_status", create_type=False,
)
ORDER_URGENCY = postgresql.ENUM("LOW", "MEDIUM", "HIGH", "URGENT", name="order_urgency", create_type=False)
ORDER_PRICE_TYPE = postgresql.ENUM("FIXED", "HOURLY", "NEGOTIABLE", name="order_price_type", create_type=False)
APPLICATION_STATUS = postgresql.ENUM(
    "PENDING", "ACCEPTED", "REJECTED", "WITHDRAWN", name="application_status", create_type=False
)
ACTOR_TYPE = postgresql.ENUM("CUSTOMER", "EXECUTOR", "SYSTEM", name="actor_type", create_type=False)

ENUMS = (ORDER_STATUS, ORDER_URGENCY, ORDER_PRICE_TYPE, APPLICATION_STATUS, ACTOR_TYPE)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "service_categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_service_categories"),
    )

    op.create_table(
        "executor_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("location_lat", sa.Float(), nullable=True),
        sa.Column("location_lng", sa.Float(), nullable=True),
        sa.Column("work_radius_km", sa.Float(), nullable=True),
        sa.Column("rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("reviews_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_orders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_executor_profiles"),
    )
    op.create_index("ix_executor_profiles__user_id", "executor_profiles", ["user_id"], unique=True)
    op.create_index(
        "ix_executor_profiles__available_premium", "executor_profiles", ["is_available", "is_premium"]
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("executor_id", sa.Integer(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", ORDER_STATUS, nullable=False, server_default="DRAFT"),
        sa.Column("urgency", ORDER_URGENCY, nullable=False, server_default="MEDIUM"),
        sa.Column("price_type", ORDER_PRICE_TYPE, nullable=False, server_default="NEGOTIABLE"),
        sa.Column("budget_from", sa.Numeric(12, 2), nullable=True),
        sa.Column("budget_to", sa.Numeric(12, 2), nullable=True),
        sa.Column("agreed_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("address", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("location_lat", sa.Float(), nullable=True),
        sa.Column("location_lng", sa.Float(), nullable=True),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("applications_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("views_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("customer_rating", sa.Numeric(2, 1), nullable=True),
        sa.Column("customer_review", sa.Text(), nullable=True),
        sa.Column("preferred_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id", name="pk_orders"),
        sa.ForeignKeyConstraint(
            ["category_id"], ["service_categories.id"],
            name="fk_orders__category_id__service_categories", ondelete="RESTRICT",
        ),
        sa.CheckConstraint(
            "budget_from IS NULL OR budget_to IS NULL OR budget_from <= budget_to",
            name="ck_orders__budget_range",
        ),
    )
    op.create_index("ix_orders__customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders__executor_id", "orders", ["executor_id"])
    op.create_index("ix_orders__category_id", "orders", ["category_id"])
    op.create_index("ix_orders__status", "orders", ["status"])
    op.create_index("ix_orders__created_at", "orders", ["created_at"])
    op.create_index("ix_orders__status_published", "orders", ["status", "is_published"])
    op.create_index("ix_orders__customer_status", "orders", ["customer_id", "status"])
    op.create_index("ix_orders__category_status", "orders", ["category_id", "status"])

    op.create_table(
        "order_applications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("executor_id", sa.Integer(), nullable=False),
        sa.Column("status", APPLICATION_STATUS, nullable=False, server_default="PENDING"),
        sa.Column("proposed_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("proposed_duration_days", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("available_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("is_viewed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_order_applications"),
        sa.ForeignKeyConstraint(
            ["order_id"], ["orders.id"],
            name="fk_order_applications__order_id__orders", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("order_id", "executor_id", name="uq_order_applications__order_executor"),
    )
    op.create_index("ix_order_applications__order_id", "order_applications", ["order_id"])
    op.create_index("ix_order_applications__executor_id", "order_applications", ["executor_id"])
    op.create_index("ix_order_applications__status", "order_applications", ["status"])
    op.create_index("ix_order_applications__created_at", "order_applications", ["created_at"])
    op.create_index("ix_order_applications__order_status", "order_applications", ["order_id", "status"])
    op.create_index(
        "ix_order_applications__executor_status", "order_applications", ["executor_id", "status"]
    )
    # Только одна принятая заявка на заказ
    op.create_index(
        "uix_order_applications__order_accepted_once",
        "order_applications",
        ["order_id"],
        unique=True,
        postgresql_where=sa.text("status = 'ACCEPTED'"),
    )

    op.create_table(
        "order_status_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("from_status", ORDER_STATUS, nullable=True),
        sa.Column("to_status", ORDER_STATUS, nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("changed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_type", ACTOR_TYPE, nullable=False),
        sa.Column("context", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_order_status_history"),
        sa.ForeignKeyConstraint(
            ["order_id"], ["orders.id"],
            name="fk_order_status_history__order_id__orders", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_order_status_history__order_id", "order_status_history", ["order_id"])
    op.create_index("ix_order_status_history__actor_type", "order_status_history", ["actor_type"])
    op.create_index("ix_order_status_history__created_at", "order_status_history", ["created_at"])
    op.create_index(
        "ix_order_status_history__order_created_at", "order_status_history", ["order_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("order_status_history")
    op.drop_table("order_applications")
    op.drop_table("orders")
    op.drop_table("executor_profiles")
    op.drop_table("service_categories")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)

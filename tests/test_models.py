"""
Схема: имена ограничений совпадают с миграцией, repr моделей.
"""
import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable

from work_exchange.db import models as m


def _ddl(model) -> str:
    return str(CreateTable(model.__table__).compile(dialect=postgresql.dialect()))


def test_constraint_names_follow_migration():
    orders_ddl = _ddl(m.orders)
    assert "CONSTRAINT pk_orders PRIMARY KEY" in orders_ddl
    assert "CONSTRAINT fk_orders__category_id__service_categories" in orders_ddl
    assert "CONSTRAINT ck_orders__budget_range" in orders_ddl

    applications_ddl = _ddl(m.order_applications)
    assert "CONSTRAINT fk_order_applications__order_id__orders" in applications_ddl
    assert "CONSTRAINT uq_order_applications__order_executor" in applications_ddl


@pytest.mark.asyncio
async def test_repr_shows_table_and_identity(session, make_category):
    assert repr(m.service_categories(name="Сантехника")) == "<service_categories #?>"

    category = await make_category("Сантехника")
    assert repr(category) == f"<service_categories #{category.id}>"

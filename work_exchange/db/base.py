"""
Декларативная база моделей биржи работ.

Имена таблиц совпадают с именами классов (orders, order_applications, ...),
имена индексов и ограничений строятся из NAMING_CONVENTION и должны
совпадать с миграциями в alembic/versions.
"""
from __future__ import annotations

from sqlalchemy import MetaData, inspect
from sqlalchemy.orm import DeclarativeBase, declared_attr

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s__%(column_0_name)s",
    "uq": "uq_%(table_name)s__%(column_0_name)s",
    "ck": "ck_%(table_name)s__%(constraint_name)s",
    "fk": "fk_%(table_name)s__%(column_0_name)s__%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=NAMING_CONVENTION)


class Base(DeclarativeBase):
    metadata = metadata

    @declared_attr.directive
    def __tablename__(cls) -> str:  # noqa: N805
        return cls.__name__.lower()

    def __repr__(self) -> str:
        # без обращения к БД: expired/несохранённый объект печатается как #?
        identity = inspect(self).identity
        key = identity[0] if identity else "?"
        return f"<{self.__tablename__} #{key}>"

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from work_exchange.config import settings


def make_engine(url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    return create_async_engine(
        url or settings.database_url,
        echo=settings.db_echo if echo is None else echo,
        pool_pre_ping=True,
    )


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: объекты остаются читаемыми после commit()
    return async_sessionmaker(bind, expire_on_commit=False, class_=AsyncSession)


engine = make_engine()
SessionLocal = make_sessionmaker(engine)

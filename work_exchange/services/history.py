from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from work_exchange.db import models as m


async def record_status_change(
    session: AsyncSession,
    *,
    order_id: int,
    from_status: Optional[m.OrderStatus],
    to_status: m.OrderStatus,
    actor_type: m.ActorType,
    changed_by_user_id: Optional[int] = None,
    reason: Optional[str] = None,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Append a row to order_status_history (no commit)."""
    await session.execute(
        insert(m.order_status_history).values(
            order_id=order_id,
            from_status=from_status,
            to_status=to_status,
            actor_type=actor_type,
            changed_by_user_id=changed_by_user_id,
            reason=reason,
            context=context or {},
        )
    )

"""
Structured logging for order arbitration.

Every accept/reject/withdraw/status change is emitted as one JSON line so that
contention on popular orders can be reconstructed from logs.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from work_exchange.infra.logging_utils import utcnow_iso

__all__ = [
    "ArbitrationEvent",
    "ArbitrationLogEntry",
    "ArbitrationLogger",
    "log_arbitration_event",
]

logger = logging.getLogger("work_exchange.arbitration")


class ArbitrationEvent(str, Enum):
    """Types of arbitration events."""
    APPLICATION_CREATED = "application_created"
    APPLICATION_ACCEPTED = "application_accepted"
    APPLICATION_REJECTED = "application_rejected"
    APPLICATION_WITHDRAWN = "application_withdrawn"
    SIBLINGS_REJECTED = "siblings_rejected"
    ACCEPT_CONFLICT = "accept_conflict"
    STATUS_CHANGED = "status_changed"
    ORDER_COMPLETED = "order_completed"


@dataclass
class ArbitrationLogEntry:
    """Structured log entry for arbitration events."""
    timestamp: str
    event: str
    order_id: Optional[int] = None
    application_id: Optional[int] = None
    actor_id: Optional[int] = None
    executor_id: Optional[int] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    reason: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        data = {k: v for k, v in asdict(self).items() if v is not None and v != {}}
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=str)


class ArbitrationLogger:
    """Logger for arbitration events with structured JSON output."""

    def __init__(self, logger_name: str = "work_exchange.arbitration"):
        self.logger = logging.getLogger(logger_name)

    def log_event(
        self,
        event: ArbitrationEvent,
        *,
        order_id: Optional[int] = None,
        application_id: Optional[int] = None,
        actor_id: Optional[int] = None,
        executor_id: Optional[int] = None,
        from_status: Optional[Any] = None,
        to_status: Optional[Any] = None,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        level: str = "INFO",
    ) -> ArbitrationLogEntry:
        entry = ArbitrationLogEntry(
            timestamp=utcnow_iso(),
            event=event.value,
            order_id=order_id,
            application_id=application_id,
            actor_id=actor_id,
            executor_id=executor_id,
            from_status=_status(from_status),
            to_status=_status(to_status),
            reason=reason,
            details=details or {},
        )
        self.logger.log(getattr(logging, level.upper(), logging.INFO), "[ARB] %s", entry.to_json())
        return entry


def _status(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


_default_logger = ArbitrationLogger()


def log_arbitration_event(event: ArbitrationEvent, **kwargs: Any) -> ArbitrationLogEntry:
    return _default_logger.log_event(event, **kwargs)

from __future__ import annotations

import logging
from datetime import datetime, timezone

from work_exchange.config import settings

__all__ = ["utcnow", "utcnow_iso", "setup_logging"]

UTC = timezone.utc


def utcnow() -> datetime:
    return datetime.now(UTC)


def utcnow_iso() -> str:
    """Return current UTC timestamp in ISO 8601 format with Z suffix."""
    return utcnow().isoformat().replace("+00:00", "Z")


def setup_logging(level: str | None = None) -> None:
    """Configure root logging for the service process."""
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("work_exchange").setLevel(getattr(logging, level_name, logging.INFO))
    # SQL пишем только при DB_ECHO
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )

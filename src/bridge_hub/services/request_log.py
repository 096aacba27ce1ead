"""Request log records and the best-effort writer that persists them."""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from bridge_hub.db.time import utcnow

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from bridge_hub.services.store import Store

logger = logging.getLogger(__name__)

# Only these inbound headers are kept on the log row.
LOGGED_HEADERS: tuple[str, ...] = ("user-agent", "content-type")


@dataclass(frozen=True)
class RequestLogEntry:
    """Structured record of one forwarding attempt."""

    endpoint_id: str | None
    request_method: str
    response_status: int
    response_time_ms: int
    request_headers: dict[str, str | None] = field(default_factory=dict)
    request_payload: Any = None
    response_body: Any = None
    ip_address: str | None = None
    user_agent: str | None = None
    error_message: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def as_row(self) -> dict[str, Any]:
        """Return column values for the `request_logs` table."""
        return asdict(self)


class RequestLogWriter:
    """Appends entries to the store without ever raising into the caller.

    A degraded log store must not take forwarding down, so failures are
    reported through `logging` and counted, then absorbed.
    """

    def __init__(self, store: Store) -> None:
        self._store = store
        self.written = 0
        self.failed = 0

    async def append(self, entry: RequestLogEntry) -> bool:
        """Persist `entry`; return False if the store rejected it."""
        try:
            await self._store.insert_log_entry(entry)
        except Exception as exc:
            self.failed += 1
            logger.error(
                "Failed to write request log %s (endpoint=%s, status=%s): %s",
                entry.id,
                entry.endpoint_id,
                entry.response_status,
                exc,
                exc_info=True,
            )
            return False
        self.written += 1
        return True

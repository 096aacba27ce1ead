# src/bridge_hub/models/request_log.py
"""SQLAlchemy model for repeater request logs."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bridge_hub.db.session import Base
from bridge_hub.db.time import utcnow


class RequestLog(Base):
    """Immutable record of one call to the repeater route."""

    __tablename__ = "request_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # Loose reference: rows outlive deleted endpoints, so no FK constraint.
    endpoint_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    request_method: Mapped[str] = mapped_column(String(16), nullable=False)
    request_headers: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    request_payload: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    response_status: Mapped[int] = mapped_column(Integer, nullable=False)
    response_body: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

# src/bridge_hub/models/endpoint.py
"""SQLAlchemy model for repeater endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bridge_hub.db.session import Base
from bridge_hub.db.time import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class Endpoint(Base):
    """A public alias that forwards `/r/{alias}` traffic to a target URL.

    The alias is the routing identity and is unique across all owners.
    `last_used_at` is written only by the repeater, never by the management API.
    """

    __tablename__ = "endpoints"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    alias: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    target_url: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    allowed_methods: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=lambda: ["POST"]
    )
    payload_mapping: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    require_api_key: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
